"""Tests for database migrations."""

import aiosqlite
import pytest

from novapulse.data.migrations import SCHEMA_VERSION, run_migrations


class TestMigrations:
    @pytest.mark.asyncio
    async def test_run_migrations(self, db_path):
        await run_migrations(db_path)

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            tables = [row[0] for row in await cursor.fetchall()]

        for table in ("weights", "signals", "condition_stats", "kv_store"):
            assert table in tables

    @pytest.mark.asyncio
    async def test_records_schema_version(self, db_path):
        await run_migrations(db_path)

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT value FROM kv_store WHERE key='schema_version'")
            row = await cursor.fetchone()

        assert row[0] == str(SCHEMA_VERSION)

    @pytest.mark.asyncio
    async def test_idempotent(self, tmp_path):
        path = str(tmp_path / "nested" / "state.db")
        await run_migrations(path)
        await run_migrations(path)
