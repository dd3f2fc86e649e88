"""Core domain layer."""

from feed_filter.core.cache import ClassificationCache, fingerprint_preference
from feed_filter.core.entities import CacheEntry, Decision, FilterState, Item, Schedule, Stats
from feed_filter.core.errors import FeedFilterError, OracleError, ParseError, PersistenceError
from feed_filter.core.interfaces import KeyValueStorage, LLMClient
from feed_filter.core.schedule import is_within_schedule, weekday_tag
from feed_filter.core.state import StateStore, StorageKeys
from feed_filter.core.stats import StatsTracker

__all__ = [
    "Item",
    "Decision",
    "CacheEntry",
    "Schedule",
    "Stats",
    "FilterState",
    "FeedFilterError",
    "OracleError",
    "ParseError",
    "PersistenceError",
    "LLMClient",
    "KeyValueStorage",
    "ClassificationCache",
    "fingerprint_preference",
    "StatsTracker",
    "StateStore",
    "StorageKeys",
    "is_within_schedule",
    "weekday_tag",
]
