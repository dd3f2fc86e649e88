"""Aggregate classification statistics."""

import logging
import time
from dataclasses import replace
from typing import Callable

from feed_filter.core.entities import Stats
from feed_filter.core.errors import PersistenceError
from feed_filter.core.interfaces import KeyValueStorage

logger = logging.getLogger(__name__)


class StatsTracker:
    """Hidden/total counters, persisted on every change."""

    def __init__(
        self,
        storage: KeyValueStorage,
        storage_key: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.storage_key = storage_key
        self._clock = clock
        self._stats = Stats(last_updated=clock())

    def get(self) -> Stats:
        """Return a snapshot; mutating it does not affect the tracker."""
        return replace(self._stats)

    async def update(self, hidden: int, total: int) -> None:
        """Add a batch's counts."""
        if hidden < 0 or total < 0:
            raise ValueError("Stats deltas cannot be negative")

        self._stats.hidden_this_session += hidden
        self._stats.total_classified += total
        self._stats.last_updated = self._clock()
        await self._persist()

    async def reset(self) -> None:
        """Zero both counters."""
        self._stats = Stats(last_updated=self._clock())
        await self._persist()

    async def load(self) -> None:
        """Restore counters from storage (on startup)."""
        try:
            raw = await self.storage.get(self.storage_key)
        except PersistenceError as e:
            logger.error("Failed to load stats: %s", e)
            return

        if not isinstance(raw, dict):
            return
        try:
            self._stats = Stats.from_dict(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed persisted stats: %s", e)

    async def _persist(self) -> None:
        try:
            await self.storage.set(self.storage_key, self._stats.to_dict())
        except PersistenceError as e:
            logger.error("Failed to persist stats: %s", e)
