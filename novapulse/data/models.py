"""Dataclass models for samples, snapshots, indicators and signals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from novapulse.config.constants import ConditionId, SignalType, TransactionType


@dataclass
class Sample:
    """Single price/volume observation."""

    timestamp: int
    price: float
    volume: float


@dataclass
class TransactionRecord:
    """A recent buy or sell seen on the asset's trade feed."""

    type: TransactionType
    value: float
    detected_time: int


@dataclass
class MarketSnapshot:
    """Everything the engine pulls from its collaborators for one tick.

    Attributes
    ----------
    timestamp:
        Epoch milliseconds of the observation.
    price, volume:
        Current price and rolling volume. Zero or missing skips the tick.
    transactions:
        Up to 50 most recent transactions, oldest first.
    holders, pro_traders:
        Scalar holder statistics.
    volume_reference:
        Freshly sampled volume used by the hyperspeed check. When ``None``
        the previous sample's volume is used.
    """

    timestamp: int
    price: float | None
    volume: float | None
    transactions: list[TransactionRecord] = field(default_factory=list)
    holders: int = 0
    pro_traders: int = 0
    volume_reference: float | None = None


@dataclass
class IndicatorSet:
    """Indicator values recomputed every tick."""

    rsi: float = 50.0
    vwap: float = 0.0
    obv: float = 0.0
    regression_slope: float = 0.0
    volume_acceleration: float = 0.0
    price_acceleration: float = 0.0
    explosion_odds: float = 0.0
    vwap_retest: bool = False
    vwap_bounce: bool = False
    volatility: float = 0.0


@dataclass
class Signal:
    """An emitted alert, later graded against subsequent prices.

    ``success`` is ``None`` while pending and becomes a fixed boolean once
    ``evaluation_deadline`` has passed.
    """

    time: int
    price: float
    type: SignalType
    confidence: float
    evaluation_deadline: int
    active_conditions: dict[ConditionId, bool] = field(default_factory=dict)
    success: bool | None = None
    prediction_time: int | None = None
    id: int | None = None

    @property
    def pending(self) -> bool:
        return self.success is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence (enum keys become plain strings)."""
        return {
            "time": self.time,
            "price": self.price,
            "type": self.type.value,
            "confidence": self.confidence,
            "evaluation_deadline": self.evaluation_deadline,
            "active_conditions": {
                cond.value: active for cond, active in self.active_conditions.items()
            },
            "success": self.success,
            "prediction_time": self.prediction_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Signal":
        """Rebuild a signal, silently dropping condition ids no longer known."""
        known = {c.value for c in ConditionId}
        return cls(
            time=int(data["time"]),
            price=float(data["price"]),
            type=SignalType(data["type"]),
            confidence=float(data.get("confidence", 0.0)),
            evaluation_deadline=int(data["evaluation_deadline"]),
            active_conditions={
                ConditionId(k): bool(v)
                for k, v in (data.get("active_conditions") or {}).items()
                if k in known
            },
            success=data.get("success"),
            prediction_time=data.get("prediction_time"),
            id=data.get("id"),
        )
