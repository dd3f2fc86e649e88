"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class LLMClient(ABC):
    """Interface for the text-completion oracle."""

    @abstractmethod
    async def classify(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw completion text, or raise ``OracleError``."""
        pass


class KeyValueStorage(ABC):
    """Interface for durable key-value storage.

    Implementations raise ``PersistenceError`` on failure.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete key; missing keys are ignored."""
        pass
