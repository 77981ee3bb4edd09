"""
Request correlation middleware.

Every request gets a request id (the caller's X-Request-ID when it is safe to
log, otherwise a generated one). The id is bound into structlog so every log
line emitted while serving the request carries it, and it is echoed back in
the response so ops can quote it when reporting a problem.
"""

import re
import time
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from propertyops.core.context import begin_request, new_request_id, reset_context

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied ids end up in logs verbatim
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")

# Probes hit these constantly; no access log for them
_QUIET_PATHS = ("/health",)

SLOW_REQUEST_MS = 1000.0


def incoming_request_id(request: Request) -> Optional[str]:
    value = request.headers.get(REQUEST_ID_HEADER)
    if value and _SAFE_REQUEST_ID.match(value):
        return value
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = incoming_request_id(request) or new_request_id()
        begin_request(request_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            if not request.url.path.startswith(_QUIET_PATHS):
                log = logger.warning if elapsed_ms >= SLOW_REQUEST_MS or status_code >= 500 else logger.info
                log("Request finished", status_code=status_code, duration_ms=elapsed_ms)
            reset_context()
            structlog.contextvars.clear_contextvars()
