"""Load recorded market samples and transactions for replay."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = ["timestamp", "price", "volume", "holders", "pro_traders", "volume_reference"]
TRANSACTION_COLUMNS = ["timestamp", "type", "value"]

_SIDES = {"buy": "Buy", "sell": "Sell"}


def _to_epoch_ms(series: pd.Series) -> pd.Series:
    """Numeric columns are taken as epoch ms; anything else is parsed as a date."""
    if pd.api.types.is_numeric_dtype(series):
        return series.astype("int64")
    parsed = pd.to_datetime(series, utc=True)
    return (parsed - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)


class ReplayDataLoader:
    """Reads CSV recordings into normalized DataFrames.

    Sample files need ``timestamp``, ``volume`` and either ``price`` or
    ``market_cap`` (converted with ``price_scale``). ``holders``,
    ``pro_traders`` and ``volume_reference`` are optional.

    Parameters
    ----------
    price_scale:
        Divisor applied to ``market_cap`` when no ``price`` column exists.
    """

    def __init__(self, price_scale: float = 1e9) -> None:
        self._price_scale = price_scale

    def load_samples(self, path: str | Path) -> pd.DataFrame:
        df = pd.read_csv(path)
        if df.empty:
            logger.warning("No samples in %s", path)
            return pd.DataFrame(columns=SAMPLE_COLUMNS)

        if "price" not in df.columns:
            if "market_cap" not in df.columns:
                raise ValueError(f"{path}: need a 'price' or 'market_cap' column")
            df["price"] = df["market_cap"] / self._price_scale
        missing = {"timestamp", "volume"} - set(df.columns)
        if missing:
            raise ValueError(f"{path}: missing columns {sorted(missing)}")

        df["timestamp"] = _to_epoch_ms(df["timestamp"])
        for col in ("holders", "pro_traders"):
            if col not in df.columns:
                df[col] = 0
            df[col] = df[col].fillna(0).astype("int64")
        if "volume_reference" not in df.columns:
            df["volume_reference"] = float("nan")

        df = df[SAMPLE_COLUMNS].sort_values("timestamp", kind="stable").reset_index(drop=True)
        logger.info("Loaded %d samples from %s", len(df), path)
        return df

    def load_transactions(self, path: str | Path | None) -> pd.DataFrame:
        if path is None:
            return pd.DataFrame(columns=TRANSACTION_COLUMNS)
        df = pd.read_csv(path)
        if df.empty:
            return pd.DataFrame(columns=TRANSACTION_COLUMNS)
        missing = set(TRANSACTION_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"{path}: missing columns {sorted(missing)}")

        df["timestamp"] = _to_epoch_ms(df["timestamp"])
        df["type"] = df["type"].astype(str).str.strip().str.lower().map(_SIDES)
        unknown = df["type"].isna().sum()
        if unknown:
            logger.warning("Dropping %d transactions with unknown side in %s", unknown, path)
            df = df.dropna(subset=["type"])

        df = df[TRANSACTION_COLUMNS].sort_values("timestamp", kind="stable").reset_index(drop=True)
        logger.info("Loaded %d transactions from %s", len(df), path)
        return df
