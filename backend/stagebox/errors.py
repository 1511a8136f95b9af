"""Error types shared by both Stagebox applications.

Services raise these; the FastAPI apps render them as
``{"error": message}`` (plus ``"details"`` when present) with the
status code carried by the exception. Stack traces stay in the log.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StageboxError(Exception):
    """Base error with an HTTP status and a client-safe message."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(StageboxError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(StageboxError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(StageboxError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(StageboxError):
    status_code = 404
    default_message = "Not found"


class ConflictError(StageboxError):
    status_code = 409
    default_message = "Conflict"


class PayloadTooLargeError(StageboxError):
    status_code = 413
    default_message = "File too large"


class RateLimitedError(StageboxError):
    status_code = 429
    default_message = "Too many attempts, try again later"


class UpstreamError(StageboxError):
    status_code = 500
    default_message = "Upstream dependency failed"


def error_response(exc: StageboxError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def _describe(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


def register_error_handlers(app: FastAPI) -> None:
    """Attach the Stagebox error rendering to *app*."""

    @app.exception_handler(StageboxError)
    async def _stagebox_error(request: Request, exc: StageboxError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(_describe(e) for e in exc.errors())
        return error_response(ValidationError(details=details or None))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
