"""
Global exception handlers for the FastAPI application.

Catches:
1. GoalpostError subclasses, mapped to the matching 4xx or 503 status code.
2. Unhandled Exception, turned into 500 Internal Server Error with a
   unique ``error_id`` for support correlation.

HTTPException is NOT handled here; FastAPI's built-in handler deals
with those. Cache failures never reach this layer.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    GoalpostError,
    NotFoundError,
    RewardClaimError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[GoalpostError], int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (AuthenticationError, 401),
    (ConflictError, 409),
    (DomainValidationError, 400),
    (RewardClaimError, 400),
    (ServiceUnavailableError, 503),
]


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers on the FastAPI app.

    Called from ``create_app()`` after all middleware and routers
    are registered.
    """

    @app.exception_handler(GoalpostError)
    async def handle_goalpost_error(request: Request, exc: GoalpostError) -> JSONResponse:
        """Map GoalpostError subclasses to HTTP status codes."""
        status_code = _get_status_code(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(
            f"{type(exc).__name__}: {exc.message}",
            extra={"error_type": type(exc).__name__, "path": request.url.path},
        )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "error_type": type(exc).__name__},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: log, return 500 with error_id."""
        error_id = uuid.uuid4().hex[:8]
        logger.exception(
            f"Unhandled exception (error_id={error_id})",
            extra={"error_id": error_id, "path": request.url.path},
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )


def _get_status_code(exc: GoalpostError) -> int:
    """Map exception type to HTTP status code."""
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    # Base GoalpostError fallback
    return 500
