"""Tests for the async SQLite database connection."""

import pytest

from novapulse.data.database import Database


class TestDatabase:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, db_path):
        db = Database(db_path)
        await db.connect()
        assert db.is_connected
        assert db.connection is not None
        await db.disconnect()
        assert not db.is_connected

    @pytest.mark.asyncio
    async def test_connection_property_raises_when_not_connected(self, db_path):
        db = Database(db_path)
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    @pytest.mark.asyncio
    async def test_context_manager(self, db_path):
        async with Database(db_path) as db:
            cursor = await db.connection.execute("PRAGMA journal_mode")
            row = await cursor.fetchone()
            assert row[0] == "wal"

    @pytest.mark.asyncio
    async def test_in_memory(self):
        async with Database(":memory:") as db:
            cursor = await db.connection.execute("SELECT 1")
            row = await cursor.fetchone()
            assert row[0] == 1

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path):
        nested = tmp_path / "sub" / "dir" / "state.db"
        async with Database(str(nested)) as db:
            assert db.path == str(nested)
        assert nested.parent.is_dir()

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, db_path):
        db = Database(db_path)
        await db.connect()
        await db.disconnect()
        await db.disconnect()
