"""SQLite schema for persisted detector state."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

SCHEMA_VERSION = 1

TABLES: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS weights (
        condition   TEXT    PRIMARY KEY,
        weight      REAL    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS signals (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        time                INTEGER NOT NULL,
        price               REAL    NOT NULL,
        type                TEXT    NOT NULL,
        confidence          REAL    NOT NULL DEFAULT 0.0,
        evaluation_deadline INTEGER NOT NULL,
        success             INTEGER,
        prediction_time     INTEGER,
        active_conditions   TEXT    DEFAULT '{}'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS condition_stats (
        condition   TEXT    PRIMARY KEY,
        total       INTEGER NOT NULL DEFAULT 0,
        success     INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key         TEXT    PRIMARY KEY,
        value       TEXT    NOT NULL
    )
    """,
]

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_signals_time ON signals(time)",
]


async def apply_schema(conn: aiosqlite.Connection) -> None:
    """Create all tables and indexes on an open connection."""
    for ddl in TABLES:
        await conn.execute(ddl)
    for idx in INDEXES:
        await conn.execute(idx)
    await conn.execute(
        "INSERT OR REPLACE INTO kv_store (key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    await conn.commit()


async def run_migrations(db_path: str) -> None:
    """Create all tables and indexes if they don't exist."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await apply_schema(db)
