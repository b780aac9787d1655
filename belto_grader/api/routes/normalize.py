# belto_grader/api/routes/normalize.py
from fastapi import APIRouter

from belto_grader.api.deps import require_text
from belto_grader.schemas import NormalizedRubric, NormalizeRequest
from belto_grader.services.rubric_normalizer import normalize_rubric

router = APIRouter()


@router.post("/normalize", response_model=NormalizedRubric, tags=["rubric"])
def normalize(body: NormalizeRequest):
    require_text("rubric required", body.rubric)
    return normalize_rubric(body.rubric)
