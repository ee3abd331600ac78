"""
Async SQLite connection handle.

The connection is opened on first use, checked with a trivial query on every
later use, and reopened with backoff when it is gone or unhealthy.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from bizdata_mcp.config import MAX_ATTEMPTS, RETRY_DELAY_SECONDS
from bizdata_mcp.errors import UpstreamError

logger = logging.getLogger(__name__)

BACKOFF_FACTOR = 1.5


class Database:
    """Lazily connected, self-healing aiosqlite connection."""

    def __init__(
        self,
        path: str,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        self.path = path
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._conn: Optional[aiosqlite.Connection] = None

    @property
    def exists(self) -> bool:
        return os.path.exists(self.path)

    async def connection(self) -> aiosqlite.Connection:
        """Return a healthy connection, reconnecting if needed."""
        if self._conn is not None:
            try:
                async with self._conn.execute("SELECT 1") as cursor:
                    await cursor.fetchone()
                return self._conn
            except (aiosqlite.Error, ValueError) as exc:
                logger.warning("Database connection unhealthy, reconnecting: %s", exc)
                await self._discard()

        return await self._connect()

    async def _connect(self) -> aiosqlite.Connection:
        delay = self.retry_delay
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                conn = await aiosqlite.connect(self.path)
                conn.row_factory = aiosqlite.Row
                self._conn = conn
                logger.info("Connected to database: %s", self.path)
                return conn
            except aiosqlite.Error as exc:
                last_error = exc
                if attempt == self.max_attempts:
                    break
                logger.warning(
                    "Database connection attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, self.max_attempts, exc, delay,
                )
                await asyncio.sleep(delay)
                delay *= BACKOFF_FACTOR

        raise UpstreamError(
            f"Could not connect to database at {self.path}",
            details=str(last_error),
        ) from last_error

    async def _discard(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except (aiosqlite.Error, ValueError) as exc:
            logger.debug("Ignoring error while closing stale connection: %s", exc)

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = await self.connection()
        async with conn.execute(query, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        conn = await self.connection()
        async with conn.execute(query, tuple(params)) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def table_names(self) -> List[str]:
        rows = await self.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
        return [row["name"] for row in rows]

    async def close(self) -> None:
        """Close the connection if one is open."""
        if self._conn is not None:
            await self._discard()
            logger.info("Database connection closed.")
