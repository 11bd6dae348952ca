"""
CapstoneFlow HTTP middleware: request correlation, access logging and
response hardening headers.
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging_config import (
    logger,
    clear_context,
    generate_request_id,
    set_project_id,
    set_request_id,
)


QUIET_PATHS = frozenset({"/", "/health", "/favicon.ico", "/docs", "/redoc", "/openapi.json"})

# Routes whose first path segment after the marker is a project id
PROJECT_SCOPED_MARKERS = ("/projects/", "/chat/")

SLOW_REQUEST_MS = 1000


def is_quiet(path: str) -> bool:
    """Health checks and docs are served without access log lines"""
    return path in QUIET_PATHS or path.endswith("/health") or path.endswith("/health/ready")


def extract_project_id(path: str) -> str:
    for marker in PROJECT_SCOPED_MARKERS:
        _, found, rest = path.partition(marker)
        candidate = rest.split("/", 1)[0]
        if found and candidate and candidate != "direct":
            return candidate
    return ""


def _level_for(status_code: int) -> Callable:
    if status_code >= 500:
        return logger.error
    if status_code >= 400:
        return logger.warning
    return logger.info


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id, echoes it back as X-Request-ID along with
    X-Response-Time, and logs the outcome. The user id is added to the
    logging context later, by the auth dependency.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        path = request.url.path
        set_request_id(request_id)
        set_project_id(extract_project_id(path))

        quiet = is_quiet(path)
        fields = {"http_method": request.method, "http_path": path}
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"{request.method} {path} raised {type(exc).__name__} after {elapsed_ms:.0f}ms",
                exc_info=True,
                extra={"event_type": "http_request_error", "duration_ms": elapsed_ms,
                       "error_type": type(exc).__name__, **fields},
            )
            clear_context()
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        if not quiet:
            _level_for(response.status_code)(
                f"{request.method} {path} {response.status_code} {elapsed_ms:.0f}ms",
                extra={"event_type": "http_request", "http_status": response.status_code,
                       "duration_ms": elapsed_ms,
                       "client_ip": request.client.host if request.client else None, **fields},
            )
            if elapsed_ms > SLOW_REQUEST_MS:
                logger.warning(
                    f"Slow request {request.method} {path}",
                    extra={"event_type": "slow_request", "duration_ms": elapsed_ms, **fields},
                )

        clear_context()
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the browser hardening headers the web client expects"""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(self.HEADERS)
        return response
