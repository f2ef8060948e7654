"""
PostgreSQL connection pool for the daily check.

One pool per process. The worker opens it for a single run and closes it
afterwards; the FastAPI app keeps it open for its lifetime.
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

from touchbase.config import settings
from touchbase.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0


class DatabasePoolManager:
    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized and not self._closed

    async def initialize(self) -> None:
        """
        Open the pool and run a probe query.

        Raises:
            ConfigurationError: SUPABASE_DB_URL is not set
            RuntimeError: the pool could not be opened or the probe failed
        """
        if self._initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        settings.require("SUPABASE_DB_URL")
        pool_config = settings.get_db_pool_config()

        logger.info("Initializing database connection pool", **pool_config)
        self.pool = AsyncConnectionPool(
            conninfo=settings.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )

        try:
            await self.pool.open(wait=True)
            # connection() refuses calls until the manager is marked initialized
            self._initialized = True
            probe = await self._probe()
            if not probe["healthy"]:
                raise RuntimeError(probe["error"])
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            self._initialized = False
            await self.pool.close()
            self.pool = None
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool initialized", connection_time_ms=probe["connection_time_ms"])

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        # Autocommit outside explicit transactions; transaction() opens its own block
        await conn.set_autocommit(True)
        app_name = f"touchbase-daily-check-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '60s'")

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        logger.info("Closing database connection pool")
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        finally:
            self._initialized = False
            self._closed = True
            self.pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if not self.initialized or self.pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Connection inside a transaction: commits on exit, rolls back on any exception."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def _probe(self) -> dict[str, Any]:
        start_time = time.time()
        try:
            async with self.connection() as conn:
                row = await (await conn.execute("SELECT 1 AS ok")).fetchone()
        except Exception as e:
            return {"healthy": False, "error": str(e), "error_type": type(e).__name__}
        if not row or row.get("ok") != 1:
            return {"healthy": False, "error": "Unexpected probe result"}
        return {"healthy": True, "connection_time_ms": round((time.time() - start_time) * 1000, 2)}

    async def health_check(self) -> dict[str, Any]:
        """Probe latency plus pool stats, for /readyz."""
        if not self.initialized or self.pool is None:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        result = await self._probe()
        result["service"] = "database_pool"
        if result["healthy"]:
            stats = self.pool.get_stats()
            result["pool_stats"] = {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            }
        else:
            logger.error("Database pool health check failed", error=result["error"])
        return result


# Global pool instance
db_pool = DatabasePoolManager()


async def get_db_connection():
    """Get database connection from pool."""
    return db_pool.connection()


async def get_db_transaction():
    """Get database connection with transaction."""
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    """Get database pool health status."""
    return await db_pool.health_check()
