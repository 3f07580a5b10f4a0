"""Request ID middleware — one id per HTTP request, in every log line.

Learn: The id comes from an incoming X-Request-ID header when a proxy
already assigned one, otherwise it's generated. It's bound into
structlog's contextvars, so anything logged while handling the request
(services, the broadcaster) carries it, and it's echoed back in the
response header.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a request ID, then log the request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", "")
        if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
            request_id = uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response: Response = await call_next(request)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response
