"""Fingerprinted classification cache."""

import hashlib
import logging
import time
from typing import Callable, Iterable, Mapping, Optional

from feed_filter.core.entities import CacheEntry, Decision
from feed_filter.core.errors import PersistenceError
from feed_filter.core.interfaces import KeyValueStorage
from feed_filter.core.persistence import CoalescingWriter

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def fingerprint_preference(text: str) -> str:
    """Deterministic digest of the preference text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ClassificationCache:
    """In-memory decision cache backed by debounced durable writes.

    An entry is only returned while its fingerprint equals the active one and
    it is younger than the TTL. Changing the active preference never sweeps
    the map; old entries simply stop matching.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        storage_key: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        persist_delay: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.storage_key = storage_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._fingerprint = fingerprint_preference("")
        self._writer = CoalescingWriter(self._persist, delay=persist_delay)

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        """Get cache statistics."""
        return {"size": self.size, "fingerprint": self._fingerprint}

    def set_active_preference(self, text: str) -> None:
        """Recompute the active fingerprint; stored entries are left in place."""
        self._fingerprint = fingerprint_preference(text)

    def get(self, item_id: str) -> Optional[Decision]:
        """Return the cached decision, or None if absent, stale or expired."""
        entry = self._entries.get(item_id)
        if entry is None:
            return None

        if entry.fingerprint != self._fingerprint:
            return None

        if self._clock() - entry.created_at > self.ttl_seconds:
            del self._entries[item_id]
            return None

        return entry.decision

    def get_batch(self, item_ids: Iterable[str]) -> dict[str, Decision]:
        """Return decisions for whichever ids hit."""
        hits: dict[str, Decision] = {}
        for item_id in item_ids:
            decision = self.get(item_id)
            if decision is not None:
                hits[item_id] = decision
        return hits

    def put(self, item_id: str, decision: Decision) -> None:
        """Store a decision under the active fingerprint."""
        self._entries[item_id] = CacheEntry(
            decision=decision,
            fingerprint=self._fingerprint,
            created_at=self._clock(),
        )

    def put_batch(self, decisions: Mapping[str, Decision]) -> None:
        """Store several decisions and schedule a debounced persist."""
        for item_id, decision in decisions.items():
            self.put(item_id, decision)
        self._writer.schedule()

    async def clear(self) -> None:
        """Drop all entries and remove the durable copy."""
        self._writer.cancel()
        await self._writer.wait()
        self._entries = {}
        try:
            await self.storage.remove(self.storage_key)
        except PersistenceError as e:
            logger.error("Failed to remove persisted cache: %s", e)

    async def load(self) -> None:
        """Load the durable copy into memory, skipping malformed entries."""
        try:
            raw = await self.storage.get(self.storage_key)
        except PersistenceError as e:
            logger.error("Failed to load cache: %s", e)
            self._entries = {}
            return

        entries: dict[str, CacheEntry] = {}
        if isinstance(raw, dict):
            for item_id, data in raw.items():
                try:
                    entries[str(item_id)] = CacheEntry.from_dict(data)
                except (KeyError, TypeError, ValueError):
                    logger.debug("Skipping malformed cache entry %s", item_id)
        self._entries = entries
        logger.info("Loaded %d cached classifications", len(entries))

    async def flush(self) -> None:
        """Persist now, replacing any pending debounced write."""
        await self._writer.flush()

    async def close(self) -> None:
        """Persist once and make sure no delayed write outlives the cache."""
        if self._writer.pending:
            await self.flush()
        self._writer.cancel()
        await self._writer.wait()

    async def _persist(self) -> None:
        payload = {item_id: entry.to_dict() for item_id, entry in self._entries.items()}
        try:
            await self.storage.set(self.storage_key, payload)
        except PersistenceError as e:
            logger.error("Failed to persist cache: %s", e)
