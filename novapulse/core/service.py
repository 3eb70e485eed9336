"""Async scheduler around the detection engine, with state persistence."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from novapulse.core.engine import DetectionEngine, TickResult
from novapulse.data.database import Database
from novapulse.data.migrations import apply_schema
from novapulse.data.repository import StateRepository
from novapulse.scoring.learner import AdaptiveWeightLearner

if TYPE_CHECKING:
    from novapulse.config.settings import Settings
    from novapulse.data.feed import SnapshotFeed

logger = logging.getLogger(__name__)


class DetectionService:
    """Drives ``DetectionEngine.tick`` on the configured cadence.

    Data flow per tick::

        feed.fetch_snapshot → engine.tick → (learner dirty) → repository

    Ticks are serialized with an ``asyncio.Lock``; a tick requested while
    another is still running is skipped. The store is optional: when it
    cannot be opened the engine runs from default weights and nothing is
    persisted.

    Parameters
    ----------
    settings:
        Full application settings.
    feed:
        Source of market snapshots.
    on_tick:
        Optional callback receiving every ``TickResult``.
    """

    def __init__(
        self,
        settings: "Settings",
        feed: "SnapshotFeed",
        on_tick: Callable[[TickResult], None] | None = None,
    ) -> None:
        self._settings = settings
        self._feed = feed
        self._on_tick = on_tick
        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

        self._db: Database | None = None
        self._repo: StateRepository | None = None
        self.engine: DetectionEngine | None = None
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load persisted state and start the scheduler loop."""
        logger.info("Starting detection service...")
        await self.initialize()
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Detection service started (interval=%d ms)", self._settings.tick_interval_ms)

    async def stop(self) -> None:
        """Stop the loop, flush state and close the store."""
        logger.info("Stopping detection service...")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.persist(force=True)
        await self._feed.close()
        if self._db is not None:
            await self._db.disconnect()
            self._db = None
            self._repo = None
        logger.info("Detection service stopped")

    async def initialize(self) -> None:
        """Open the store (best effort) and build the engine from saved state."""
        learner = AdaptiveWeightLearner(self._settings.learning)
        try:
            self._db = Database(self._settings.database.path)
            await self._db.connect()
            await apply_schema(self._db.connection)
            self._repo = StateRepository(self._db)
            learner = AdaptiveWeightLearner(
                self._settings.learning,
                weights=await self._repo.load_weights(),
                signals=await self._repo.load_signals(),
                stats=await self._repo.load_condition_stats(),
            )
            logger.info("Loaded %d stored signals", len(learner.signals))
        except Exception:
            logger.exception("Could not load persisted state; starting from defaults")
            if self._db is not None:
                await self._db.disconnect()
            self._db = None
            self._repo = None

        self.engine = DetectionEngine(self._settings, learner)

    async def _run_loop(self) -> None:
        interval = self._settings.tick_interval_ms / 1000

        while self._running:
            try:
                await self.tick_once()
            except Exception:
                logger.exception("Error in detection tick")

            await asyncio.sleep(interval)

    async def tick_once(self, now: int | None = None) -> TickResult | None:
        """Fetch one snapshot and run it through the engine.

        Returns ``None`` when the tick was skipped (busy, no data or
        unusable data).
        """
        if self.engine is None:
            raise RuntimeError("Service not initialized. Call start() or initialize() first.")
        if self._lock.locked():
            self.skipped_ticks += 1
            logger.warning("Previous tick still running; skipping")
            return None

        async with self._lock:
            snapshot = await self._feed.fetch_snapshot()
            if snapshot is None:
                logger.debug("No snapshot available")
                return None

            result = self.engine.tick(snapshot, now)
            if result is not None and self._on_tick is not None:
                self._on_tick(result)
            if self.engine.learner.dirty:
                await self.persist()
            return result

    async def persist(self, force: bool = False) -> bool:
        """Write weights, signal history and condition stats if changed."""
        if self.engine is None or self._repo is None:
            return False
        learner = self.engine.learner
        if not (learner.dirty or force):
            return False
        try:
            await self._repo.save_weights(learner.weights)
            await self._repo.replace_signals(learner.signals)
            await self._repo.save_condition_stats(learner.stats)
        except Exception:
            logger.exception("Failed to persist detector state")
            return False
        learner.dirty = False
        return True

    def reset_context(self) -> None:
        """Forget the current asset; weights and signal history survive."""
        if self.engine is not None:
            self.engine.reset_context()
