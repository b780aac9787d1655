# belto_grader/main.py
import os
import time
from typing import List

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from belto_grader.utils.logger import logger
from belto_grader.services.grader import GradingError
from belto_grader.api.routes.system import router as system_router
from belto_grader.api.routes.grade import router as grade_router
from belto_grader.api.routes.grade_loose import router as grade_loose_router
from belto_grader.api.routes.normalize import router as normalize_router
from belto_grader.api.routes.debug import router as debug_router

load_dotenv()
APP_NAME = os.getenv("APP_NAME", "Belto Grader")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _cors_origins() -> List[str]:
    raw = os.getenv("ALLOW_ORIGINS", "*")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


async def log_requests(request: Request, call_next):
    """Log each request with its status and duration; expose the duration as X-Process-Time."""
    route = f"{request.method} {request.url.path}"
    started = time.perf_counter()
    logger.debug(f"Request started: {route}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {route} - {e} - {time.perf_counter() - started:.3f}s",
            exc_info=True,
        )
        raise

    elapsed = time.perf_counter() - started
    logger.info(f"{route} -> {response.status_code} ({elapsed:.3f}s)")
    response.headers["X-Process-Time"] = f"{elapsed:.6f}"
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the service as {"error": ...}."""

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": " -> ".join(str(x) for x in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        logger.warning(f"Request validation failed on {request.url.path}: {details}")
        return _error(422, "Request validation failed", details=details)

    @app.exception_handler(HTTPException)
    async def on_http_error(request: Request, exc: HTTPException):
        logger.warning(f"{request.url.path} -> {exc.status_code}: {exc.detail}")
        return _error(exc.status_code, exc.detail)

    @app.exception_handler(GradingError)
    async def on_grading_error(request: Request, exc: GradingError):
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return _error(500, str(exc) or "Unexpected error")

    @app.exception_handler(Exception)
    async def on_unexpected_error(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return _error(500, "Internal server error")


def create_app() -> FastAPI:
    logger.info(
        f"Starting {APP_NAME} v{APP_VERSION} "
        f"(generation service configured: {bool(os.getenv('LLM_COMPLETIONS_URL'))})"
    )

    application = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        description="Rubric grading with JSON repair and fail-open validation of model replies",
    )
    application.middleware("http")(log_requests)

    origins = _cors_origins()
    logger.info(f"CORS origins: {origins}")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)

    application.include_router(system_router)
    for router in (grade_router, grade_loose_router, normalize_router, debug_router):
        application.include_router(router, prefix="/api")
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "belto_grader.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
