"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Readiness only
probes the backends the running configuration uses: the metadata database
when stores are SQL-backed, Redis when the cache is.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.bissy.config import CacheBackend, StoreBackend, get_settings
from src.bissy.core.database import get_engine
from src.bissy.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database and Redis connectivity. Returns check results dict."""
    settings = get_settings()
    checks: dict = {
        "query_cache": "ok" if getattr(request.app.state, "query_cache_service", None) else "error",
        "database": "skipped",
        "redis": "skipped",
    }

    if settings.STORE_BACKEND == StoreBackend.sql:
        try:
            engine = get_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            checks["database"] = "error"
            checks["database_error"] = str(e)

    if settings.CACHE_BACKEND == CacheBackend.redis:
        try:
            redis = get_redis_pool()
            if await redis.ping():
                checks["redis"] = "ok"
            else:
                checks["redis"] = "error"
                checks["redis_error"] = "PING did not return PONG"
        except Exception as e:
            checks["redis"] = "error"
            checks["redis_error"] = str(e)

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 if every configured dependency answers, 503 otherwise."""
    checks = await _check_dependencies(request)
    all_healthy = all(checks[name] in ("ok", "skipped") for name in ("query_cache", "database", "redis"))

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
