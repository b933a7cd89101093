"""
Database helper functions for common patterns.
Reduces boilerplate in the repositories.
"""

from collections.abc import Sequence
from typing import Any

import psycopg
from psycopg.abc import Query

from music_pipeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_one(
    query: Query, params: Sequence | dict = (), *, connection: psycopg.AsyncConnection
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Connection obtained from the pool manager

    Returns:
        Dict with row data or None if no results
    """
    try:
        async with connection.cursor() as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
            return row if row else None

    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def fetch_all(
    query: Query, params: Sequence | dict = (), *, connection: psycopg.AsyncConnection
) -> list[dict[str, Any]]:
    """
    Execute query and return all rows as list of dicts.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Connection obtained from the pool manager

    Returns:
        List of dicts with row data
    """
    try:
        async with connection.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def execute_many(
    query: Query, payload: Sequence[dict[str, Any]], *, connection: psycopg.AsyncConnection
) -> int:
    """
    Execute the same statement once per parameter set.

    Returns:
        Total number of affected rows
    """
    if not payload:
        return 0

    try:
        async with connection.cursor() as cur:
            await cur.executemany(query, payload)
            return max(cur.rowcount, 0)

    except psycopg.Error as e:
        logger.error(
            "Database execute_many error",
            query=str(query)[:100],
            row_count=len(payload),
            error=str(e),
        )
        raise DatabaseError(f"Batch write failed: {e}", operation="execute_many") from e
