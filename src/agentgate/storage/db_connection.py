"""
Database connection management for the SQLite document store.

SQLite performs best with one long-lived connection: pragmas are applied once
and the page cache stays warm. WAL mode allows one writer alongside any number
of readers.

SQLite is single-writer, so writes are serialised at the application layer
with a semaphore; async tasks queue on it instead of fighting SQLite's
busy-timeout. Reads need no semaphore under WAL.

Usage
-----
    manager = ConnectionManager()
    await manager.open(path)

    async with manager.transaction() as conn:
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT ...")

    await manager.close()

One manager is created by the gateway runtime at startup and handed to the
store; there is no module-level instance.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from agentgate.util.logger import get_logger

logger = get_logger("database_connection")

_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",    # safe with WAL
    "PRAGMA cache_size = -65536",     # 64 MB page cache
    "PRAGMA temp_store = MEMORY",
    "PRAGMA wal_autocheckpoint = 1000",
]


class ConnectionManager:
    """
    Owner of the single aiosqlite connection used by the document store.

    * Reads  - ``async with read()``; WAL allows concurrent reads.
    * Writes - ``async with transaction()``; serialised by ``_write_sem``.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path | str) -> None:
        """
        Open the database and apply the pragmas.

        ``":memory:"`` opens a private in-memory database, which is what the
        tests use.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists; ignoring")
            return

        if str(path) != ":memory:":
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path if isinstance(path, Path) else None

        self._conn = await aiosqlite.connect(path)
        self._conn.row_factory = aiosqlite.Row

        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection. Safe to call twice."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except Exception:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw connection.

        Raises:
            RuntimeError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise RuntimeError("ConnectionManager: connection is not open. Call await open(path) at startup.")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialised write transaction; commits on exit, rolls back on error."""
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read access; symmetrical with :meth:`transaction`, takes no lock."""
        yield self.connection
