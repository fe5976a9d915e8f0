"""HTTP middleware: request ids and access logging."""

import time
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ..logging import get_context_logger, log_api_request

logger = get_context_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, reusing the caller's when given.

    The id is exposed as ``request.state.request_id`` and echoed back in
    the ``X-Request-ID`` response header.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of every API request."""

    SKIP_PATHS = {"/health", "/health/ready"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)

        log_api_request(
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            getattr(request.state, "request_id", None),
        )
        return response


def setup_middleware(app) -> None:
    """Install request id and access log middleware on ``app``."""
    # Added last runs first: the request id must exist before logging reads it
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    logger.debug("API middleware configured")
