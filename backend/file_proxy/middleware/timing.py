"""Request timing middleware."""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from file_proxy.core.logging import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 500
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


class TimingMiddleware(BaseHTTPMiddleware):
    """Logs each request's duration and exposes it as a response header.

    Downloads buffer the whole file before responding, so large files
    show up here as slow requests.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        log = logger.warning if elapsed_ms > SLOW_REQUEST_THRESHOLD_MS else logger.debug
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=elapsed_ms,
            slow=elapsed_ms > SLOW_REQUEST_THRESHOLD_MS,
            content_length=response.headers.get("content-length"),
        )

        response.headers[RESPONSE_TIME_HEADER] = str(elapsed_ms)
        return response
