# belto_grader/api/deps.py
from fastapi import HTTPException, status

from belto_grader.services.grader import ConfigurationError, completions_url
from belto_grader.utils.logger import logger


def require_completions_url():
    """Ensure the generation service address is configured."""
    try:
        completions_url()
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e
    logger.debug("Generation service URL check passed")


def require_text(message: str, *values: str) -> None:
    """400 when any of the given fields is blank after trimming."""
    if any(not (v or "").strip() for v in values):
        logger.warning(f"Rejected request: {message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
