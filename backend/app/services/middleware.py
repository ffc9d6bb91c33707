"""Request tracing middleware for PraxisFlow HR."""
import re
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("praxisflow-api.middleware")

SKIP_LOG_PATHS = {"/health", "/metrics"}

# Accept a caller-supplied correlation id only if it looks like one
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,64}$")
_PRACTICE_PATH_RE = re.compile(r"^/api/practices/([^/]+)/")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an X-Request-ID (reused from the caller when
    well-formed), reports the duration in X-Process-Time and writes one log
    line per request. The practice id from the path is logged for tenant
    tracing; query strings are not, since they may carry HR filters.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        path = request.url.path
        if path in SKIP_LOG_PATHS:
            return response

        extra = {
            "request_id": request_id,
            "http_method": request.method,
            "http_path": path,
            "http_status": response.status_code,
            "duration_ms": duration_ms,
        }
        match = _PRACTICE_PATH_RE.match(path)
        if match:
            extra["practice_id"] = match.group(1)

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "request completed", extra=extra)
        return response
