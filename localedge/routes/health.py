# localedge/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter, Response, status

from localedge.config import settings
from localedge.db.pool import db_health_check
from localedge.infrastructure.observability.logging import log_health_check
from localedge.services.redis_client import fast_redis

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "localedge-api"}


@router.get("/readyz")
async def readyz(response: Response):
    """
    Readiness check across the database pool and Redis.

    Redis is optional: when it is not configured the check reports it as
    skipped and readiness depends on the database alone.
    """
    checks = {}
    overall_ok = True

    t0 = time.perf_counter()
    db_health = await db_health_check()
    db_ok = bool(db_health.get("healthy"))
    latency_ms = round((time.perf_counter() - t0) * 1000, 1)
    checks["database"] = {"ok": db_ok, "latency_ms": latency_ms}
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not db_ok:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    log_health_check("database", db_ok, latency_ms, db_health.get("error"))
    overall_ok = overall_ok and db_ok

    if fast_redis.configured:
        t0 = time.perf_counter()
        redis_ok = await fast_redis.ping()
        latency_ms = round((time.perf_counter() - t0) * 1000, 1)
        checks["redis"] = {"ok": redis_ok, "latency_ms": latency_ms}
        log_health_check("redis", redis_ok, latency_ms)
        overall_ok = overall_ok and redis_ok
    else:
        checks["redis"] = {"ok": True, "skipped": True}

    checks["configuration"] = {
        "environment": settings.environment,
        "twilio": bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN),
        "google_calendar": bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET),
        "openai": bool(settings.OPENAI_API_KEY),
    }

    if not overall_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
