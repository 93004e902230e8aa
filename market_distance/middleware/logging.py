import re
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

log = structlog.get_logger()

# Upstream proxies may hand us an id; anything else gets a fresh one.
_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Health checks hit these every few seconds.
QUIET_PATHS = frozenset({"/health"})


def request_id_for(request: Request) -> str:
    incoming = request.headers.get("x-request-id", "")
    if _REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id to every log line emitted while serving a request.

    Distance runs can take several seconds (batches plus the inter-batch
    pause), so the elapsed time goes out as a Server-Timing header as well.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        request_id = request_id_for(request)
        bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log.exception(
                "http_request_failed",
                elapsed_ms=round((time.perf_counter() - start_time) * 1000, 2),
                error=str(e),
            )
            raise

        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        emit = log.debug if request.url.path in QUIET_PATHS else log.info
        emit("http_request", status_code=response.status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["Server-Timing"] = f"app;dur={elapsed_ms}"
        return response
