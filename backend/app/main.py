"""
PraxisFlow HR API v1.0
FastAPI backend for DSGVO-compliant HR analytics: k-anonymous KPI
snapshots, threshold alerts and staffing demand, async PostgreSQL, JWT auth.
"""
import os
import logging
import time
import collections
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from dotenv import load_dotenv
from app.services.hr_errors import HrAuthError, HrError
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware
from app.services.perf_monitor import tracker as perf_tracker

# Load .env file in dev (no-op when the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("praxisflow-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()

# Startup validation
for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var} — running in dev mode")

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from app.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning: {e}")
    yield
    from app.db import engine
    await engine.dispose()


app = FastAPI(
    title="PraxisFlow HR API",
    version="1.0.0",
    description="k-anonymous personnel KPIs, alerts and staffing demand for medical practices",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------
class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiter, per client IP.
    ``limit <= 0`` disables it (tests, trusted internal deployments).
    """
    def __init__(self, app, limit: int = 60):
        super().__init__(app)
        self.limit = limit
        # {ip: deque of timestamps}
        self._windows: dict = collections.defaultdict(collections.deque)

    async def dispatch(self, request: Request, call_next):
        if self.limit <= 0 or request.url.path == "/health":
            return await call_next(request)
        ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        window = self._windows[ip]
        # Remove entries older than 60 seconds
        while window and now - window[0] > 60:
            window.popleft()
        if len(window) >= self.limit:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests",
                    "message": "Please slow down.",
                    "code": "RATE_LIMITED",
                },
                headers={"Retry-After": "60"},
            )
        window.append(now)
        return await call_next(request)


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # HR payloads must never land in shared caches
        response.headers["Cache-Control"] = "no-store"
        return response


# ---------------------------------------------------------------------------
# Error envelope: {error, message?, code?}
# ---------------------------------------------------------------------------
@app.exception_handler(HrError)
async def hr_error_handler(request: Request, exc: HrError):
    perf_tracker.record_error(exc.code)
    if exc.status_code >= 500:
        logger.error(
            f"HR internal error on {request.url.path}: {exc.message}",
            exc_info=exc,
            extra={"error_code": exc.code},
        )
    else:
        logger.info(
            f"HR request rejected ({exc.status_code}): {exc.message}",
            extra={"error_code": exc.code, "http_path": request.url.path},
        )
    headers = None
    if isinstance(exc, HrAuthError) and exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    perf_tracker.record_error("HR_VALIDATION_ERROR")
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "message": problems, "code": "HR_VALIDATION_ERROR"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "code": f"HTTP_{exc.status_code}"},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    perf_tracker.record_error("UNHANDLED")
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "HR_INTERNAL_ERROR"},
    )


# CORS
_cors_origins = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()
]

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware, limit=RATE_LIMIT_PER_MINUTE)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)
# Outermost: every response (including 429s) gets X-Request-ID
app.add_middleware(RequestTimingMiddleware)

from app.api.hr_routes import router as hr_router  # noqa: E402

app.include_router(hr_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": app.version,
        "db_configured": bool(os.getenv("DATABASE_URL")),
    }


@app.get("/metrics")
async def metrics():
    """
    In-process metrics for the HR pipeline: computations per operation,
    average durations, level fallbacks and error counts by code.
    """
    snapshot = perf_tracker.get_metrics()
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **snapshot,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
