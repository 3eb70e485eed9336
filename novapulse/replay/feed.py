"""Snapshot feed backed by recorded DataFrames."""

from __future__ import annotations

import logging
import math

import pandas as pd

from novapulse.config.constants import MAX_TRANSACTIONS, TransactionType
from novapulse.data.feed import SnapshotFeed
from novapulse.data.models import MarketSnapshot, TransactionRecord

logger = logging.getLogger(__name__)


def _optional_float(value) -> float | None:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


class ReplayFeed(SnapshotFeed):
    """Replays sample rows in order, one per ``fetch_snapshot`` call.

    Each snapshot carries the latest transactions recorded at or before its
    timestamp (at most 50). Returns ``None`` once exhausted.
    """

    def __init__(self, samples: pd.DataFrame, transactions: pd.DataFrame | None = None) -> None:
        self._rows = list(samples.itertuples(index=False))
        self._trades: list[TransactionRecord] = []
        if transactions is not None and not transactions.empty:
            self._trades = [
                TransactionRecord(
                    type=TransactionType(t.type),
                    value=float(t.value),
                    detected_time=int(t.timestamp),
                )
                for t in transactions.itertuples(index=False)
            ]
        self._pos = 0
        self._trade_pos = 0

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._rows)

    async def fetch_snapshot(self) -> MarketSnapshot | None:
        if self.exhausted:
            return None
        row = self._rows[self._pos]
        self._pos += 1

        timestamp = int(row.timestamp)
        while self._trade_pos < len(self._trades) and self._trades[self._trade_pos].detected_time <= timestamp:
            self._trade_pos += 1
        recent = self._trades[max(0, self._trade_pos - MAX_TRANSACTIONS):self._trade_pos]

        return MarketSnapshot(
            timestamp=timestamp,
            price=_optional_float(row.price),
            volume=_optional_float(row.volume),
            transactions=list(recent),
            holders=int(row.holders),
            pro_traders=int(row.pro_traders),
            volume_reference=_optional_float(row.volume_reference),
        )
