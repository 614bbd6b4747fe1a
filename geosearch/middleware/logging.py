import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bind_contextvars, clear_contextvars

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id and the query string to every log line of a request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        # Honour an upstream id so traces line up across proxies.
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
            query=request.url.query or None,
            client_ip=request.client.host if request.client else "unknown",
        )
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            log.exception("http_request_failed", elapsed_ms=round(elapsed_ms, 2), error=str(e))
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        log.info("http_request", status_code=response.status_code, elapsed_ms=round(elapsed_ms, 2))
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
