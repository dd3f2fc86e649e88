"""Authoritative filter state on top of key-value storage."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from feed_filter.core.entities import FilterState, Schedule
from feed_filter.core.interfaces import KeyValueStorage

logger = logging.getLogger(__name__)

STATE_FIELDS = ("user_prompt", "filter_enabled", "schedule", "has_seen_onboarding", "hide_shorts")


@dataclass(frozen=True)
class StorageKeys:
    """Namespaced storage keys."""

    prefix: str = "feedfilter_"

    def key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    @property
    def cache(self) -> str:
        return self.key("cache")

    @property
    def stats(self) -> str:
        return self.key("stats")


class StateStore:
    """Read and write ``FilterState`` field by field.

    There is no in-memory copy: every read goes to storage. Writers that derive
    a new value from the current one use ``modify`` so the read and the write
    happen under one lock.
    """

    def __init__(self, storage: KeyValueStorage, keys: Optional[StorageKeys] = None) -> None:
        self.storage = storage
        self.keys = keys or StorageKeys()
        self._lock = asyncio.Lock()

    async def get_state(self) -> FilterState:
        """Get stored state with defaults."""
        defaults = FilterState()
        values: dict[str, Any] = {}
        for name in STATE_FIELDS:
            values[name] = await self.storage.get(self.keys.key(name))

        return FilterState(
            user_prompt=values["user_prompt"] or defaults.user_prompt,
            filter_enabled=_as_bool(values["filter_enabled"], defaults.filter_enabled),
            schedule=Schedule.from_dict(values["schedule"]),
            has_seen_onboarding=_as_bool(values["has_seen_onboarding"], defaults.has_seen_onboarding),
            hide_shorts=_as_bool(values["hide_shorts"], defaults.hide_shorts),
        )

    async def update_state(self, **changes: Any) -> None:
        """Write only the given fields."""
        async with self._lock:
            await self._write(changes)

    async def modify(self, compute: Callable[[FilterState], dict[str, Any]]) -> dict[str, Any]:
        """Read the current state, derive changes from it and write them atomically.

        Returns:
            The changes that were written (empty if none)
        """
        async with self._lock:
            state = await self.get_state()
            changes = compute(state) or {}
            await self._write(changes)
            return changes

    async def get_schedule(self) -> Schedule:
        return Schedule.from_dict(await self.storage.get(self.keys.key("schedule")))

    async def set_schedule(self, schedule: Schedule) -> None:
        await self.update_state(schedule=schedule)

    async def _write(self, changes: dict[str, Any]) -> None:
        unknown = [name for name in changes if name not in STATE_FIELDS]
        if unknown:
            raise ValueError(f"Unknown state field: {', '.join(unknown)}")

        for name, value in changes.items():
            if isinstance(value, Schedule):
                value = value.to_dict()
            await self.storage.set(self.keys.key(name), value)
        if changes:
            logger.debug("State updated: %s", sorted(changes))


def _as_bool(value: Any, default: bool) -> bool:
    return default if value is None else bool(value)
