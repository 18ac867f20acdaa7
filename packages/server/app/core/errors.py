"""
Error taxonomy and the handlers that turn it into `{"error": ...}` responses.

Services raise these; the API layer never builds error bodies by hand.
Persistence failures are logged with their raw detail and surfaced to the
client only as a generic message.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()


class AppError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class AuthError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class PermissionDeniedError(AppError):
    status_code = 403
    default_message = "Forbidden"


class PersistenceError(AppError):
    """A store-layer failure. `detail` is for logs only."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, detail: str = "", message: str | None = None):
        super().__init__(message)
        self.detail = detail


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
    if not loc:
        return "Request body must be a JSON object"
    return f"{loc[-1]} is invalid"


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on the application."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, PersistenceError):
            log.error(
                "request.persistence_failed",
                path=request.url.path,
                detail=exc.detail,
            )
        elif exc.status_code >= 500:
            log.error("request.failed", path=request.url.path, error=exc.message)
        else:
            log.info(
                "request.rejected",
                path=request.url.path,
                status=exc.status_code,
                error=exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        log.info("request.rejected", path=request.url.path, status=400, error=message)
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return unhandled_error_response(request, exc)


def unhandled_error_response(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500 for exceptions no handler claimed. Details go to the log only."""
    log.error(
        "request.unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
