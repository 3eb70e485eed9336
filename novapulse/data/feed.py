"""Pull-based source of market snapshots."""

from __future__ import annotations

from abc import ABC, abstractmethod

from novapulse.data.models import MarketSnapshot


class SnapshotFeed(ABC):
    """Supplies the current market snapshot on request.

    Implementations return ``None`` when nothing can be read right now (the
    tick is then skipped) and must never raise for transient gaps.
    """

    @abstractmethod
    async def fetch_snapshot(self) -> MarketSnapshot | None:
        ...

    async def close(self) -> None:
        """Release any resources held by the feed."""
        return None
