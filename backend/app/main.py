"""
Precision Pulse Operations API
FastAPI backend with async PostgreSQL and JWT auth: container pay entry,
work orders, workforce, staffing and the operations dashboard reports.
"""
import os
import logging
import time
import collections
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware

load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("precision-pulse.api")

APP_VERSION = "1.0.0"
_PROCESS_START = time.monotonic()

for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var} — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.db import init_db, engine
    try:
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning (OK if using Alembic): {e}")
    yield
    await engine.dispose()


app = FastAPI(
    title="Precision Pulse Operations API",
    version=APP_VERSION,
    description="Container piecework pay and warehouse operations reporting",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------
class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiter.
    Buckets:
      - /api/auth/login, /api/auth/register : 5 req/min per IP
      - CSV exports                         : 10 req/min per IP
      - everything else                     : 120 req/min per IP
    """
    WINDOW_SECONDS = 60

    def __init__(self, app):
        super().__init__(app)
        self._windows: dict = collections.defaultdict(collections.deque)
        self._last_sweep = time.monotonic()

    def allow(self, bucket: str, limit: int, now: float) -> bool:
        """Record a hit on bucket unless it already has limit hits in the window."""
        if now - self._last_sweep > self.WINDOW_SECONDS:
            self._sweep(now)
        window = self._windows[bucket]
        while window and now - window[0] > self.WINDOW_SECONDS:
            window.popleft()
        if len(window) >= limit:
            return False
        window.append(now)
        return True

    def _sweep(self, now: float) -> None:
        stale = [key for key, window in self._windows.items()
                 if not window or now - window[-1] > self.WINDOW_SECONDS]
        for key in stale:
            del self._windows[key]
        self._last_sweep = now

    def _get_limit(self, path: str) -> int:
        if path in ("/api/auth/login", "/api/auth/register"):
            return 5
        if path.endswith(".csv"):
            return 10
        return 120

    async def dispatch(self, request: Request, call_next):
        ip = request.client.host if request.client else "unknown"
        path = request.url.path
        limit = self._get_limit(path)
        bucket = f"{ip}:{path if limit <= 10 else 'general'}"
        if not self.allow(bucket, limit, time.monotonic()):
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down."},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
if os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes"):
    app.add_middleware(RateLimitMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.auth_routes import router as auth_router
from app.api.container_routes import router as container_router
from app.api.work_order_routes import router as work_order_router
from app.api.workforce_routes import router as workforce_router, training_router
from app.api.floor_routes import staffing_router, damage_router
from app.api.report_routes import router as report_router
from app.api.user_routes import router as user_router

app.include_router(auth_router)
app.include_router(container_router)
app.include_router(work_order_router)
app.include_router(workforce_router)
app.include_router(training_router)
app.include_router(staffing_router)
app.include_router(damage_router)
app.include_router(report_router)
app.include_router(user_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
