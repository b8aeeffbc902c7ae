"""
Request Logging Middleware

Middleware that:
- Assigns a request_id to each request (or reuses the caller's X-Request-ID)
- Logs request start and end with timing
- Propagates request_id to all logs via contextvars
- Tags push routes with a route group so their logs can be filtered
- Records HTTP metrics for Prometheus
"""
import time
import uuid
import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging_config import set_request_id, clear_request_id, get_request_id
from app.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Path prefix -> route group carried on request logs
ROUTE_GROUPS = (
    ("/api/v1/notifications", "broadcast"),
    ("/api/v1/tokens", "registry"),
    ("/api/v1/shop", "shop"),
    ("/api/v1/system", "system"),
)


def route_group(path: str) -> str:
    """Route group of a request path, "other" when no prefix matches."""
    for prefix, group in ROUTE_GROUPS:
        if path == prefix or path.startswith(prefix + "/"):
            return group
    return "other"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs all HTTP requests with timing and correlation IDs.

    For each request:
    1. Takes the caller's X-Request-ID, or generates a UUID
    2. Sets request_id in context for all downstream logs
    3. Logs request start (method, path, route group)
    4. Logs request end (status code, response time in ms)

    Service logs emitted while handling the request (broadcast, cleanup)
    carry the same request_id, which is also returned in error bodies.
    """

    # Paths to exclude from detailed logging (health checks, etc.)
    EXCLUDED_PATHS = {'/', '/health', '/metrics', '/docs', '/redoc', '/openapi.json'}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's id so client and server logs correlate
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = set_request_id(request_id)
        request.state.request_id = request_id
        request.state.route_group = route_group(request.url.path)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"
        group = request.state.route_group
        should_log = path not in self.EXCLUDED_PATHS

        if should_log:
            logger.info(
                "Request started",
                extra={
                    "event_type": "request_start",
                    "method": method,
                    "path": path,
                    "route_group": group,
                    "client_ip": client_host,
                }
            )

        try:
            response = await call_next(request)
            # Calculate response time
            response_time_ms = (time.perf_counter() - start_time) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id

            # Log request completion
            if should_log:
                # 4xx is a client problem, 5xx is ours
                log_level = logging.INFO if response.status_code < 400 else logging.WARNING
                if response.status_code >= 500:
                    log_level = logging.ERROR

                logger.log(
                    log_level,
                    "Request completed",
                    extra={
                        "event_type": "request_complete",
                        "method": method,
                        "path": path,
                        "route_group": group,
                        "status_code": response.status_code,
                        "response_time_ms": round(response_time_ms, 2),
                        "client_ip": client_host,
                    }
                )

            # Record Prometheus metrics
            record_request_metrics(
                method=method,
                path=path,
                status_code=response.status_code,
                response_time_seconds=response_time_ms / 1000
            )
            return response

        except Exception as e:
            response_time_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    "method": method,
                    "path": path,
                    "route_group": group,
                    "response_time_ms": round(response_time_ms, 2),
                    "client_ip": client_host,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True
            )
            record_request_metrics(
                method=method,
                path=path,
                status_code=500,
                response_time_seconds=response_time_ms / 1000
            )
            raise

        finally:
            # Reset context for the next request on this task
            clear_request_id(token)


def get_current_request_id() -> str:
    """
    Get the current request ID from context.

    Returns:
        Current request ID or "no-request" if not in request context
    """
    return get_request_id() or "no-request"
