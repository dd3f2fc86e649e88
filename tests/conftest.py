"""Shared test fixtures."""

from typing import Any, Optional

import pytest

from feed_filter.core import KeyValueStorage, PersistenceError


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage that records writes and can be made to fail."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.set_calls: list[str] = []
        self.fail = False

    async def get(self, key: str) -> Optional[Any]:
        if self.fail:
            raise PersistenceError("storage unavailable")
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail:
            raise PersistenceError("storage unavailable")
        self.set_calls.append(key)
        self.data[key] = value

    async def remove(self, key: str) -> None:
        if self.fail:
            raise PersistenceError("storage unavailable")
        self.data.pop(key, None)


@pytest.fixture
def storage() -> MemoryStorage:
    """Create empty in-memory storage."""
    return MemoryStorage()
