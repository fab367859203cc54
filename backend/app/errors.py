"""Error taxonomy and the uniform JSON error envelope.

Handlers raise these domain exceptions; the exception handlers registered in
``app.main`` turn them into ``{"success": false, "message": ..., "errors": ...}``
responses with the matching HTTP status.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to a client-visible status code."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[list] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation failed"


class AuthError(AppError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists"


class UpstreamError(AppError):
    status_code = 502
    default_message = "Upstream service failed"


def error_body(message: str, errors: Any = None, detail: Optional[str] = None) -> dict:
    body: dict = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    if detail and settings.debug:
        body["error"] = detail
    return body


def _field_errors(exc: RequestValidationError) -> list[dict]:
    """Flatten pydantic errors into ``[{field, message}]``."""
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return out


async def _app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


async def _http_error_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body("Validation failed", _field_errors(exc)))


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=error_body("Internal server error", detail=str(exc)))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
