# belto_grader/api/routes/system.py
import os

from fastapi import APIRouter

from belto_grader.schemas import SystemStatusResponse
from belto_grader.services import grader
from belto_grader.utils.logger import logger

router = APIRouter()


@router.get("/system-status", response_model=SystemStatusResponse)
def system_status():
    logger.info("System status check requested")

    completions_configured = bool((os.getenv("LLM_COMPLETIONS_URL") or "").strip())

    return SystemStatusResponse(
        system_healthy=completions_configured,
        completions_configured=completions_configured,
        model=grader.model_name(),
        version=os.getenv("APP_VERSION", "1.0.0"),
    )
