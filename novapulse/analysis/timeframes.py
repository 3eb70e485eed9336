"""Coarse timeframe series and their bullish convergence."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from novapulse.config.constants import TimeframeTrend

if TYPE_CHECKING:
    from novapulse.config.settings import ShockwaveSettings, TimeframeSettings, TimeframeSpec

logger = logging.getLogger(__name__)


class TimeframeSeries:
    """One bounded series sampled at its own cadence.

    Parameters
    ----------
    spec:
        Series name, minimum spacing between accepted samples and maximum
        retained length.
    min_points:
        Points needed before the series is classified at all.
    volume_multiplier:
        Latest volume must exceed the series mean by this factor for a
        bullish classification.
    """

    def __init__(
        self,
        spec: "TimeframeSpec",
        min_points: int = 5,
        volume_multiplier: float = 1.5,
    ) -> None:
        self.name = spec.name
        self.interval_ms = spec.interval_ms
        self.max_length = spec.max_length
        self._min_points = min_points
        self._volume_multiplier = volume_multiplier

        self.prices: deque[float] = deque()
        self.volumes: deque[float] = deque()
        self.classifications: deque[TimeframeTrend] = deque(maxlen=spec.max_length)
        self.last_update: int | None = None

    @property
    def latest(self) -> TimeframeTrend | None:
        return self.classifications[-1] if self.classifications else None

    def is_due(self, now: int) -> bool:
        return self.last_update is None or now - self.last_update >= self.interval_ms

    def ingest(self, price: float, volume: float, now: int) -> bool:
        """Accept the sample if the series is due; returns whether it was taken."""
        if not self.is_due(now):
            return False
        self.prices.append(price)
        self.volumes.append(volume)
        self.last_update = now
        # Classified before the oldest point is dropped
        self.classifications.append(self.classify())
        if len(self.prices) > self.max_length:
            self.prices.popleft()
            self.volumes.popleft()
        return True

    def classify(self) -> TimeframeTrend:
        if len(self.prices) < self._min_points:
            return TimeframeTrend.NEUTRAL
        net_change = self.prices[-1] - self.prices[0]
        avg_volume = sum(self.volumes) / len(self.volumes)
        if net_change > 0 and self.volumes[-1] > avg_volume * self._volume_multiplier:
            return TimeframeTrend.BULLISH
        return TimeframeTrend.BEARISH


class MultiTimeframeAggregator:
    """Feeds each tick's sample into every coarse series."""

    def __init__(
        self,
        settings: "TimeframeSettings",
        shockwave: "ShockwaveSettings",
    ) -> None:
        self._settings = settings
        self._threshold = shockwave.timeframe_convergence_threshold
        self.series: list[TimeframeSeries] = []
        self.reset()

    def reset(self) -> None:
        self.series = [
            TimeframeSeries(
                spec,
                min_points=self._settings.min_points,
                volume_multiplier=self._settings.volume_multiplier,
            )
            for spec in self._settings.series
        ]

    def ingest(self, price: float, volume: float, now: int) -> list[str]:
        """Returns the names of the series that accepted the sample."""
        accepted = [s.name for s in self.series if s.ingest(price, volume, now)]
        if accepted:
            logger.debug("Timeframe update at %d: %s", now, ", ".join(accepted))
        return accepted

    def convergence_ratio(self) -> float:
        if not self.series:
            return 0.0
        bullish = sum(1 for s in self.series if s.latest == TimeframeTrend.BULLISH)
        return bullish / len(self.series)

    def converged(self) -> bool:
        return self.convergence_ratio() >= self._threshold

    def trends(self) -> dict[str, TimeframeTrend | None]:
        return {s.name: s.latest for s in self.series}
