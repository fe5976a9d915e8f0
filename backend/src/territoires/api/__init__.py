"""FastAPI routes and API modules for API Territoires.

Every error leaves the API in the same envelope::

    {"success": false, "error": "...", "error_code": "RATE_LIMITED", ...}

with the code repeated in an ``X-Error-Code`` header.
"""

from typing import Any
from uuid import UUID

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..logging import get_logger

logger = get_logger(__name__)


# =========================
# Response Models
# =========================


class ErrorDetail(BaseModel):
    """One field-level problem in a rejected request."""

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    error: str
    error_code: str
    retry_after: int | None = None
    details: list[ErrorDetail] | None = None


# =========================
# Exception Classes
# =========================


class APIError(HTTPException):
    """Base for errors rendered as an :class:`ErrorResponse`."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: list[ErrorDetail] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message, headers=headers)


class NotFoundError(APIError):
    def __init__(self, resource: str, identifier: str | UUID):
        super().__init__(
            status_code=404,
            error_code="NOT_FOUND",
            message=f"{resource} not found: {identifier}",
        )


class ValidationError(APIError):
    """Malformed or out-of-range input (400)."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(
            status_code=400,
            error_code="INVALID_REQUEST",
            message=message,
            details=details,
        )


class RateLimitError(APIError):
    """Caller is over quota or temporarily blocked (429).

    ``headers`` carries the quota headers; ``Retry-After`` is always set.
    """

    def __init__(
        self,
        retry_after: int = 60,
        blocked: bool = False,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(
            status_code=429,
            error_code="RATE_LIMITED",
            message=(
                "Too many requests. You have been temporarily blocked."
                if blocked
                else "Too many requests. Please slow down."
            ),
            headers={**(headers or {}), "Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after
        self.blocked = blocked


class ServiceUnavailableError(APIError):
    """Temporarily unable to accept work (503) with a ``Retry-After`` hint."""

    def __init__(self, message: str, retry_after: int = 5):
        super().__init__(
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
            message=message,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


# =========================
# Exception Handlers
# =========================


def _error_response(
    status_code: int,
    body: ErrorResponse,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers={**(headers or {}), "X-Error-Code": body.error_code},
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return _error_response(
        exc.status_code,
        ErrorResponse(
            error=exc.message,
            error_code=exc.error_code,
            retry_after=getattr(exc, "retry_after", None),
            details=exc.details,
        ),
        exc.headers,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Framework errors such as 404 for an unknown route or 405."""
    return _error_response(
        exc.status_code,
        ErrorResponse(error=str(exc.detail), error_code="HTTP_ERROR"),
        exc.headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body and path validation failures become 400 INVALID_REQUEST."""
    details = [
        ErrorDetail(
            code=str(error.get("type", "invalid")),
            message=str(error.get("msg", "Invalid value")),
            field=".".join(str(part) for part in error.get("loc", ()) if part != "body") or None,
        )
        for error in exc.errors()
    ]
    return _error_response(
        400,
        ErrorResponse(error="Invalid request", error_code="INVALID_REQUEST", details=details),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return _error_response(
        500,
        ErrorResponse(error="An unexpected error occurred", error_code="INTERNAL_ERROR"),
    )


def register_exception_handlers(app) -> None:
    """Install the error handlers on ``app``."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
