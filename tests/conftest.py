"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from novapulse.config.constants import TransactionType
from novapulse.config.settings import Settings, load_settings
from novapulse.data.models import MarketSnapshot, Sample, TransactionRecord


@pytest.fixture
def settings() -> Settings:
    """Load default (scalping) settings for testing."""
    return load_settings("default")


@pytest.fixture
def standard_settings() -> Settings:
    """Standard-mode settings: no scalping notices, 60-sample window."""
    return load_settings("standard")


@pytest.fixture
def rising_samples() -> list[Sample]:
    """Prices 1..15 with constant volume 100, one second apart."""
    return [Sample(timestamp=i * 1000, price=float(i), volume=100.0) for i in range(1, 16)]


@pytest.fixture
def whale_buys():
    """Factory for a burst of large buys detected just before *now*."""

    def _make(now: int, count: int = 6, value: float = 50000.0) -> list[TransactionRecord]:
        return [
            TransactionRecord(type=TransactionType.BUY, value=value, detected_time=now - 1000)
            for _ in range(count)
        ]

    return _make


@pytest.fixture
def make_snapshot():
    """Factory for market snapshots with sensible defaults."""

    def _make(
        timestamp: int,
        price: float | None = 100.0,
        volume: float | None = 100.0,
        transactions: list[TransactionRecord] | None = None,
        **kwargs,
    ) -> MarketSnapshot:
        return MarketSnapshot(
            timestamp=timestamp,
            price=price,
            volume=volume,
            transactions=transactions or [],
            **kwargs,
        )

    return _make


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Temporary database path for test isolation."""
    return str(tmp_path / "test_novapulse.db")
