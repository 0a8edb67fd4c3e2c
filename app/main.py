"""FastAPI application for the assessment marking service."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded  # type: ignore[import-not-found]

from app.config import get_settings
from app.middleware.logging import RequestLoggingMiddleware, configure_logging
from app.middleware.rate_limit import get_limiter, rate_limit_exceeded_handler
from app.middleware.request_id import RequestIDMiddleware
from app.routers import marking
from app.utils.errors import (
    MarkingError,
    MarkingValidationError,
    RateLimitedError,
    SizeLimitError,
    suggest_fix,
)

# Application metadata
VERSION = "1.0.0"
COMMIT_HASH = "development"  # This can be set via environment variable or build process

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan event handler for startup and shutdown."""
    # Startup: Validate environment configuration
    try:
        settings = get_settings()
        configure_logging(settings.log_level)

        # Log startup (without exposing secrets)
        logger.info(f"Starting Assessment Marker API v{VERSION}")
        logger.info(f"Model: {settings.model_name}")
        logger.info(f"Remote marking: {'enabled' if settings.gemini_configured else 'disabled (GEMINI_API_KEY not set)'}")
        logger.info("Environment validation: OK")

    except Exception as e:
        logger.error(f"Startup validation failed: {e}")
        raise

    yield

    logger.info("Shutting down Assessment Marker API")


app = FastAPI(
    title="Assessment Marker API",
    description="Local rule-based and Gemini-assisted marking of student submissions",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add rate limiter to app state (required by slowapi)
limiter = get_limiter()
app.state.limiter = limiter

# Register custom rate limit exceeded handler
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# HTTP status per marking error kind, most specific first
ERROR_STATUS_CODES = (
    (MarkingValidationError, status.HTTP_400_BAD_REQUEST),
    (SizeLimitError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
)


def status_for_error(exc: MarkingError) -> int:
    """HTTP status for a marking error; remote failures default to 502."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_502_BAD_GATEWAY


@app.exception_handler(MarkingError)
async def marking_error_handler(request: Request, exc: MarkingError) -> JSONResponse:
    """Render marking errors with the original message and a suggestion."""
    status_code = status_for_error(exc)
    message = str(exc) or type(exc).__name__
    if status_code >= 500:
        logger.error(f"Marking failed on {request.url.path}: {message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "suggestion": suggest_fix(message)},
    )


# Request ID first so logging sees it (last added runs outermost)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this to specific domains
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.

    Local marking has no external dependencies, so the service is healthy
    whenever it is running; the response reports whether remote marking is
    configured.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "services": {
            "local_marking": "healthy",
            "gemini_api": "configured" if settings.gemini_configured else "not configured",
        },
    }


@app.get("/version")
async def version_info() -> Dict[str, str]:
    """
    Get version information for the API.

    Returns:
        JSON with version number and commit hash.
    """
    return {
        "version": VERSION,
        "commit_hash": COMMIT_HASH,
    }


app.include_router(marking.router)
