# belto_grader/api/routes/debug.py
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from belto_grader.api.deps import require_completions_url
from belto_grader.schemas import DebugRequest
from belto_grader.services import grader

router = APIRouter()


@router.post("/debug", dependencies=[Depends(require_completions_url)], tags=["system"])
def debug_upstream(body: DebugRequest):
    """Forward a tiny prompt upstream and return the raw reply, unparsed, with its status."""
    status_code, text = grader.probe(body.prompt)
    return Response(
        content=text,
        status_code=status_code,
        media_type="application/json; charset=utf-8",
    )
