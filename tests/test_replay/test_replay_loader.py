"""Tests for loading replay recordings and feeding them back."""

from __future__ import annotations

import math

import pandas as pd
import pytest

from novapulse.config.constants import TransactionType
from novapulse.replay.data_loader import SAMPLE_COLUMNS, ReplayDataLoader
from novapulse.replay.feed import ReplayFeed


@pytest.fixture
def loader() -> ReplayDataLoader:
    return ReplayDataLoader(price_scale=1e9)


class TestLoadSamples:
    def test_price_column(self, loader, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("timestamp,price,volume\n2000,1.1,50\n1000,1.0,40\n")

        df = loader.load_samples(path)

        assert list(df.columns) == SAMPLE_COLUMNS
        assert df["timestamp"].tolist() == [1000, 2000]
        assert df["holders"].tolist() == [0, 0]
        assert df["volume_reference"].isna().all()

    def test_market_cap_scaled(self, loader, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("timestamp,market_cap,volume,holders\n1000,500000000,10,42\n")

        df = loader.load_samples(path)

        assert df["price"].iloc[0] == pytest.approx(0.5)
        assert df["holders"].iloc[0] == 42

    def test_iso_timestamps(self, loader, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("timestamp,price,volume\n2024-01-01T00:00:01Z,1.0,10\n")
        assert loader.load_samples(path)["timestamp"].iloc[0] == 1704067201000

    def test_missing_price(self, loader, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("timestamp,volume\n1000,10\n")
        with pytest.raises(ValueError, match="price"):
            loader.load_samples(path)

    def test_missing_volume(self, loader, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("timestamp,price\n1000,1.0\n")
        with pytest.raises(ValueError, match="volume"):
            loader.load_samples(path)


class TestLoadTransactions:
    def test_normalizes_sides(self, loader, tmp_path):
        path = tmp_path / "tx.csv"
        path.write_text("timestamp,type,value\n3000,sell,5\n1000,BUY,10\n2000,hold,7\n")

        df = loader.load_transactions(path)

        assert df["type"].tolist() == ["Buy", "Sell"]
        assert df["timestamp"].tolist() == [1000, 3000]

    def test_none_path(self, loader):
        assert loader.load_transactions(None).empty


class TestReplayFeed:
    @pytest.mark.asyncio
    async def test_attaches_trades_up_to_timestamp(self):
        samples = pd.DataFrame(
            {
                "timestamp": [1000, 2000],
                "price": [1.0, 1.1],
                "volume": [10.0, 12.0],
                "holders": [5, 6],
                "pro_traders": [1, 2],
                "volume_reference": [float("nan"), 11.0],
            }
        )
        trades = pd.DataFrame(
            {"timestamp": [500, 1500, 2500], "type": ["Buy", "Sell", "Buy"], "value": [1.0, 2.0, 3.0]}
        )
        feed = ReplayFeed(samples, trades)
        assert len(feed) == 2

        first = await feed.fetch_snapshot()
        assert first.timestamp == 1000
        assert [t.value for t in first.transactions] == [1.0]
        assert first.volume_reference is None
        assert first.holders == 5

        second = await feed.fetch_snapshot()
        assert [t.type for t in second.transactions] == [TransactionType.BUY, TransactionType.SELL]
        assert second.volume_reference == 11.0

        assert feed.exhausted
        assert await feed.fetch_snapshot() is None

    @pytest.mark.asyncio
    async def test_missing_price_becomes_none(self):
        samples = pd.DataFrame(
            {
                "timestamp": [1000],
                "price": [math.nan],
                "volume": [10.0],
                "holders": [0],
                "pro_traders": [0],
                "volume_reference": [math.nan],
            }
        )
        snapshot = await ReplayFeed(samples).fetch_snapshot()
        assert snapshot.price is None
