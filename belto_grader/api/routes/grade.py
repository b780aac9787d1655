# belto_grader/api/routes/grade.py
from typing import Optional

from fastapi import APIRouter, Query

from belto_grader.api.deps import require_completions_url, require_text
from belto_grader.schemas import GradeRequest, GradingResult
from belto_grader.services import grader
from belto_grader.utils.logger import logger

router = APIRouter()

_DEFAULT_MAX_SCORE = 100.0
_DEFAULT_PASS_THRESHOLD = 60.0


@router.post(
    "/grade",
    response_model=GradingResult,
    response_model_exclude_none=True,
    tags=["grading"],
)
def grade_submission(
    body: GradeRequest,
    force: Optional[str] = Query(default=None, description="'1' forces the strict JSON-only prompt"),
):
    """
    Strict mode: grade a submission against a rubric and return a validated result.

    A reply the model never gets into JSON still yields 200 with a zero-score
    placeholder whose summary_feedback starts with "Parser failed".
    """
    require_text("rubric and answer are required", body.rubric, body.answer)
    require_completions_url()

    # 0 / null fall back to the defaults
    max_score = float(body.maxScore or _DEFAULT_MAX_SCORE)
    pass_threshold = float(body.passThreshold or _DEFAULT_PASS_THRESHOLD)
    forced = body.force or force == "1"

    logger.info(
        f"Grading request - rubric={len(body.rubric)} chars, answer={len(body.answer)} chars, "
        f"context={len(body.context)} chars, force={forced}"
    )

    return grader.grade_with_escalation(
        body.rubric,
        body.answer,
        body.context,
        max_score=max_score,
        pass_threshold=pass_threshold,
        force=forced,
    )
