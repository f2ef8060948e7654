"""
Query helpers shared by the daily check repositories.

Every helper either borrows a connection from the pool for a single statement
or runs on a caller-supplied connection, which is how several statements are
grouped into one transaction (see PostgresDailyCheckStore.apply_missed_interaction).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from touchbase.db.pool import get_db_connection
from touchbase.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _connection_scope(
    connection: psycopg.AsyncConnection | None,
) -> AsyncIterator[psycopg.AsyncConnection]:
    if connection is not None:
        yield connection
        return
    async with await get_db_connection() as conn:
        yield conn


def _wrap(operation: str, query: str, error: psycopg.Error) -> DatabaseError:
    logger.error(
        "Database query failed",
        operation=operation,
        query=" ".join(query.split())[:100],
        error=str(error),
        error_type=type(error).__name__,
    )
    # Connection-level failures may succeed on the next run; data errors will not
    recoverable = isinstance(error, psycopg.OperationalError)
    return DatabaseError(f"Query failed: {error}", operation=operation, recoverable=recoverable)


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Execute query and return the first row as a dict, or None.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Existing connection, e.g. inside a transaction
    """
    try:
        async with _connection_scope(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
    except psycopg.Error as e:
        raise _wrap("fetch_one", query, e) from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Execute query and return all rows as dicts."""
    try:
        async with _connection_scope(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
    except psycopg.Error as e:
        raise _wrap("fetch_all", query, e) from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Execute a write and return the number of affected rows."""
    try:
        async with _connection_scope(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap("execute", query, e) from e
