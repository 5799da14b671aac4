# localedge/main.py
"""
LocalEdge operations API.

Owns the lifecycle of the shared clients: the Postgres pool and Redis are
opened on startup and every client is closed on shutdown.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from localedge.config import settings
from localedge.db.pool import db_pool
from localedge.infrastructure.observability.logging import get_logger, setup_logging
from localedge.middleware import RequestContextMiddleware
from localedge.routes import admin, appointments, calendar, health, leads, messages, sms, voice
from localedge.services.calendar.sync_service import calendar_sync_service
from localedge.services.redis_client import fast_redis
from localedge.services.telephony.sms_client import sms_client

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []
    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        if fast_redis.configured:
            logger.info("Initializing Redis connection")
            await fast_redis.initialize()
            startup_tasks.append("redis")
        else:
            logger.warning("Redis not configured, reschedule guard disabled")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)
        if "redis" in startup_tasks:
            await fast_redis.close()
        if "database_pool" in startup_tasks:
            await db_pool.close()
        raise

    yield

    logger.info("Application shutting down")
    shutdown_errors = []

    for name, close in (
        ("http_clients", _close_http_clients),
        ("redis", fast_redis.close),
        ("database", db_pool.close),
    ):
        try:
            await close()
        except Exception as e:
            logger.error("Error during shutdown", component=name, error=str(e))
            shutdown_errors.append(f"{name}: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


async def _close_http_clients() -> None:
    await sms_client.close()
    await calendar_sync_service.close()


app = FastAPI(
    title="LocalEdge Operations API",
    description="Appointments, calendar sync, reminders and call handling for small businesses",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept-Language", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

app.include_router(health.router)
app.include_router(appointments.router)
app.include_router(calendar.router)
app.include_router(voice.router)
app.include_router(sms.router)
app.include_router(messages.router)
app.include_router(leads.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
