"""Persistence of weights, signal history, condition stats and config."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from novapulse.config.constants import ConditionId
from novapulse.data.models import Signal
from novapulse.scoring.learner import ConditionStats

if TYPE_CHECKING:
    from novapulse.data.database import Database

logger = logging.getLogger(__name__)

CONFIG_KEY = "config"

_KNOWN_CONDITIONS = {c.value for c in ConditionId}


def _bool_to_db(value: bool | None) -> int | None:
    return None if value is None else int(value)


def _db_to_bool(value: int | None) -> bool | None:
    return None if value is None else bool(value)


class StateRepository:
    """Data-access layer for the detector's persisted state."""

    def __init__(self, db: "Database") -> None:
        self._db = db

    @property
    def _conn(self):
        return self._db.connection

    # -- Weights --------------------------------------------------------------

    async def load_weights(self) -> dict[ConditionId, float]:
        """Stored weights keyed by condition; unknown names are ignored."""
        cursor = await self._conn.execute("SELECT condition, weight FROM weights")
        rows = await cursor.fetchall()
        return {
            ConditionId(row[0]): float(row[1])
            for row in rows
            if row[0] in _KNOWN_CONDITIONS
        }

    async def save_weights(self, weights: Mapping[ConditionId, float]) -> None:
        await self._conn.executemany(
            """
            INSERT INTO weights (condition, weight) VALUES (?, ?)
            ON CONFLICT(condition) DO UPDATE SET weight=excluded.weight
            """,
            [(cond.value, float(w)) for cond, w in weights.items()],
        )
        await self._conn.commit()
        logger.debug("Saved %d weights", len(weights))

    async def clear_weights(self) -> None:
        await self._conn.execute("DELETE FROM weights")
        await self._conn.commit()

    # -- Signals --------------------------------------------------------------

    async def replace_signals(self, signals: Iterable[Signal]) -> int:
        """Overwrite the stored history with *signals*. Returns the row count.

        The delete and every insert share one transaction; a failing row
        leaves the previous history in place.
        """
        signals = list(signals)
        ids: list[int | None] = []
        try:
            await self._conn.execute("DELETE FROM signals")
            for signal in signals:
                record = signal.to_dict()
                record["success"] = _bool_to_db(record["success"])
                record["active_conditions"] = json.dumps(record["active_conditions"])
                cursor = await self._conn.execute(
                    """
                    INSERT INTO signals
                        (time, price, type, confidence, evaluation_deadline,
                         success, prediction_time, active_conditions)
                    VALUES
                        (:time, :price, :type, :confidence, :evaluation_deadline,
                         :success, :prediction_time, :active_conditions)
                    """,
                    record,
                )
                ids.append(cursor.lastrowid)
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        for signal, row_id in zip(signals, ids):
            signal.id = row_id
        logger.debug("Stored %d signals", len(signals))
        return len(signals)

    async def load_signals(self, since: int | None = None) -> list[Signal]:
        """Stored signals ordered by time, optionally only those at or after *since*."""
        query = (
            "SELECT id, time, price, type, confidence, evaluation_deadline, "
            "success, prediction_time, active_conditions FROM signals"
        )
        params: tuple[Any, ...] = ()
        if since is not None:
            query += " WHERE time >= ?"
            params = (since,)
        query += " ORDER BY time ASC, id ASC"

        cursor = await self._conn.execute(query, params)
        rows = await cursor.fetchall()
        signals = []
        for row in rows:
            record = dict(row)
            record["success"] = _db_to_bool(record["success"])
            record["active_conditions"] = json.loads(record["active_conditions"] or "{}")
            try:
                signals.append(Signal.from_dict(record))
            except ValueError:
                logger.warning(
                    "Skipping stored signal %s with unknown type %r", record["id"], record["type"]
                )
        return signals

    # -- Condition stats ------------------------------------------------------

    async def load_condition_stats(self) -> dict[ConditionId, ConditionStats]:
        cursor = await self._conn.execute("SELECT condition, total, success FROM condition_stats")
        rows = await cursor.fetchall()
        return {
            ConditionId(row[0]): ConditionStats(total=row[1], success=row[2])
            for row in rows
            if row[0] in _KNOWN_CONDITIONS
        }

    async def save_condition_stats(self, stats: Mapping[ConditionId, ConditionStats]) -> None:
        await self._conn.executemany(
            """
            INSERT INTO condition_stats (condition, total, success) VALUES (?, ?, ?)
            ON CONFLICT(condition) DO UPDATE SET total=excluded.total, success=excluded.success
            """,
            [(cond.value, s.total, s.success) for cond, s in stats.items()],
        )
        await self._conn.commit()

    # -- Key/value and configuration ------------------------------------------

    async def get_value(self, key: str, default: Any = None) -> Any:
        cursor = await self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Corrupt value stored under %r; using default", key)
            return default

    async def set_value(self, key: str, value: Any) -> None:
        await self._conn.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, json.dumps(value)),
        )
        await self._conn.commit()

    async def get_config(self) -> dict[str, Any]:
        """The persisted configuration record (nested by settings section)."""
        record = await self.get_value(CONFIG_KEY, {})
        return record if isinstance(record, dict) else {}

    async def set_config(self, record: Mapping[str, Any]) -> None:
        await self.set_value(CONFIG_KEY, dict(record))
