# localedge/db/pool.py
"""
Postgres connection pool for the operations API and the reminder worker.

Connections come back in autocommit mode with dict rows and UTC session time,
so `scheduled_at` values round-trip as aware UTC datetimes. Writers that need
the per-business schedule lock use `transaction()`; the lock waits at most
LOCK_TIMEOUT before Postgres gives up with a retryable error.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATEMENT_TIMEOUT = "30s"
LOCK_TIMEOUT = "5s"
CLOSE_TIMEOUT_SECONDS = 30.0


class DatabasePoolManager:
    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._state = "new"  # new -> open -> closed

    @property
    def initialized(self) -> bool:
        return self._state == "open"

    async def initialize(self) -> None:
        """Open the pool and prove one round trip works."""
        if self._state == "open":
            logger.warning("Database pool already initialized")
            return
        if self._state == "closed":
            raise RuntimeError("Cannot reinitialize closed pool")

        options = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=_configure_session,
            **options,
        )
        try:
            await pool.open(wait=True, timeout=options["timeout"])
            async with pool.connection() as conn:
                row = await (await conn.execute("SELECT 1 AS ok")).fetchone()
            if not row or row["ok"] != 1:
                raise RuntimeError("unexpected SELECT 1 result")
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await _close_quietly(pool)
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        self._state = "open"
        logger.info(
            "Database pool ready",
            min_size=options["min_size"],
            max_size=options["max_size"],
            timeout=options["timeout"],
        )

    async def close(self) -> None:
        if self._state != "open":
            return
        self._state = "closed"
        logger.info("Closing database connection pool")
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Borrow an autocommit connection."""
        if self._state != "open":
            raise RuntimeError(f"Database pool is not open (state={self._state})")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Borrow a connection inside BEGIN; commits on exit, rolls back on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if self._state != "open":
            return {"healthy": False, "service": "database_pool", "error": "Pool not initialized"}

        started = time.perf_counter()
        try:
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "pool_stats": {
                key: stats.get(key, 0)
                for key in ("pool_size", "pool_available", "requests_waiting")
            },
        }


async def _configure_session(conn: psycopg.AsyncConnection) -> None:
    conn.row_factory = dict_row
    await conn.set_autocommit(True)
    await conn.execute(
        sql.SQL("SET application_name = {}").format(
            sql.Literal(f"localedge-{settings.environment}")
        )
    )
    await conn.execute("SET timezone = 'UTC'")
    await conn.execute(sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT)))
    await conn.execute(sql.SQL("SET lock_timeout = {}").format(sql.Literal(LOCK_TIMEOUT)))


async def _close_quietly(pool: AsyncConnectionPool) -> None:
    try:
        await pool.close()
    except Exception as e:
        logger.warning("Error closing partially opened pool", error=str(e))


db_pool = DatabasePoolManager()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
