"""Async SQLite connection management."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"


class Database:
    """Thin wrapper around an ``aiosqlite`` connection.

    Usage::

        db = Database("data/novapulse.db")
        await db.connect()
        # ... use db.connection ...
        await db.disconnect()
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        """Return the active connection or raise."""
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    async def connect(self) -> None:
        """Open the SQLite connection and enable WAL mode on file databases."""
        if self._db_path != _MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        if self._db_path != _MEMORY:
            await self._conn.execute("PRAGMA journal_mode=WAL")
        logger.info("Connected to database: %s", self._db_path)

    async def disconnect(self) -> None:
        """Close the SQLite connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Disconnected from database: %s", self._db_path)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()
