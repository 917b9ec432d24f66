import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.lib.logger import configure_logger

logger = configure_logger(__name__)

# Load balancer health checks hit "/" every few seconds
QUIET_PATHS = {"/"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per HTTP request with status and latency."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response: Response = await call_next(request)
        process_time = time.time() - start_time

        if request.url.path in QUIET_PATHS and response.status_code < 400:
            return response

        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
        }
        if request.query_params:
            request_info["query_params"] = dict(request.query_params)

        response_info = {
            "status_code": response.status_code,
            "process_time_ms": round(process_time * 1000, 2),
        }

        status_mark = "✓" if response.status_code < 400 else "✗"
        log = logger.info if response.status_code < 500 else logger.warning
        log(
            f"{status_mark} {request.method} {request.url.path}",
            extra={
                "request": request_info,
                "response": response_info,
                "event_type": "http_request",
            },
        )

        return response
