# belto_grader/api/routes/grade_loose.py
from fastapi import APIRouter

from belto_grader.api.deps import require_completions_url, require_text
from belto_grader.schemas import ExtractionTrace, LooseGradeRequest, LooseGradeResponse
from belto_grader.services import grader
from belto_grader.utils.logger import logger

router = APIRouter()


@router.post(
    "/grade-loose",
    response_model=LooseGradeResponse,
    response_model_exclude_none=True,
    tags=["grading"],
)
def grade_submission_loose(body: LooseGradeRequest):
    """Loose mode: no JSON required, grade and feedback are recovered from free text."""
    require_text("rubric and submission are required", body.rubric, body.submission)
    require_completions_url()

    logger.info(
        f"Loose grading request - rubric={len(body.rubric)} chars, submission={len(body.submission)} chars"
    )

    raw, extraction = grader.grade_loose(body.rubric, body.submission)

    return LooseGradeResponse(
        raw=raw,
        grade=extraction.grade,
        feedback=extraction.feedback,
        extracted=ExtractionTrace(method=extraction.method, note=extraction.note),
    )
