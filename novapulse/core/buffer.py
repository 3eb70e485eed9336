"""Bounded FIFO windows of price/volume samples."""

from __future__ import annotations

import logging
import math
from collections import deque

from novapulse.data.models import Sample

logger = logging.getLogger(__name__)


def _is_usable(value: float | None) -> bool:
    """A reading is usable when it is a finite, strictly positive number."""
    if value is None:
        return False
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False


class SampleBuffer:
    """Fixed-capacity sliding window; the oldest sample is evicted first.

    Parameters
    ----------
    capacity:
        Maximum number of samples retained (120 in scalping mode, 60 in
        standard mode by default).
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._samples: deque[Sample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, sample: Sample) -> bool:
        """Append *sample*, evicting from the front when full.

        Returns ``False`` (and leaves the buffer untouched) when the price or
        volume is missing, zero or not finite.
        """
        if not (_is_usable(sample.price) and _is_usable(sample.volume)):
            logger.debug(
                "Skipping unusable sample at %s (price=%r, volume=%r)",
                sample.timestamp,
                sample.price,
                sample.volume,
            )
            return False
        self._samples.append(sample)
        return True

    def clear(self) -> None:
        self._samples.clear()

    @property
    def samples(self) -> list[Sample]:
        return list(self._samples)

    @property
    def prices(self) -> list[float]:
        return [s.price for s in self._samples]

    @property
    def volumes(self) -> list[float]:
        return [s.volume for s in self._samples]

    @property
    def latest(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    def __len__(self) -> int:
        return len(self._samples)
