"""FastAPI middleware for observability.

Binds the request id and acting user to the log context, times the request
and echoes X-Request-ID on the response.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from auth.dependencies import ACTOR_HEADER
from .context import bind_request, generate_request_id
from .logging_config import get_logger
from .metrics import http_request_duration_seconds, http_requests_total

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Correlate every log line of a request and record HTTP metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        bind_request(request_id, request.headers.get(ACTOR_HEADER))

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            http_requests_total.labels(method=request.method, status_class="5xx").inc()
            logger.error(
                f"{request.method} {request.url.path} failed: {e}",
                extra={"path": request.url.path, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise

        elapsed = time.perf_counter() - start_time
        http_requests_total.labels(method=request.method, status_class=f"{response.status_code // 100}xx").inc()
        http_request_duration_seconds.labels(method=request.method).observe(elapsed)

        # Health checks and scrapes would drown the access log
        if request.url.path not in ("/health", "/ready", "/metrics"):
            logger.info(
                f"{request.method} {request.url.path} {response.status_code}",
                extra={"path": request.url.path, "status_code": response.status_code,
                       "duration_ms": round(elapsed * 1000, 2)},
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
