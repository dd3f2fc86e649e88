"""Core domain entities."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def normalize_time(value: Any) -> Optional[str]:
    """Return value as zero-padded ``HH:MM``, or None if it is not a valid time."""
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class Decision(str, Enum):
    """Classification outcome for a single item."""

    SHOW = "SHOW"
    HIDE = "HIDE"


@dataclass(frozen=True)
class Item:
    """A video entry discovered on a page."""

    id: str
    title: str
    source: str
    is_short: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("ID cannot be empty")
        if not self.title:
            raise ValueError("Title cannot be empty")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        """Build an item from a plain record (``source`` or ``channel``)."""
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            source=str(data.get("source") or data.get("channel") or ""),
            is_short=bool(data.get("is_short", False)),
        )


@dataclass
class CacheEntry:
    """Cached decision, valid only under the fingerprint it was stored with."""

    decision: Decision
    fingerprint: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "fingerprint": self.fingerprint,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            decision=Decision(data["decision"]),
            fingerprint=str(data["fingerprint"]),
            created_at=float(data["created_at"]),
        )


@dataclass
class Schedule:
    """Weekly time window during which the filter is active.

    ``enabled=False`` means no restriction (always active), not "never active".
    An ``end_time`` earlier than ``start_time`` wraps past midnight.
    """

    enabled: bool = False
    days: Optional[list[str]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @classmethod
    def disabled(cls) -> "Schedule":
        return cls(enabled=False)

    @property
    def start_minute(self) -> Optional[int]:
        return _minute_of_day(self.start_time)

    @property
    def end_minute(self) -> Optional[int]:
        return _minute_of_day(self.end_time)

    def to_dict(self) -> dict[str, Any]:
        if not self.enabled:
            return {"enabled": False}
        return {
            "enabled": True,
            "days": list(self.days or []),
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    @classmethod
    def from_window(cls, days: Any, start_time: Any, end_time: Any) -> "Schedule":
        """Build an enabled schedule from untrusted values.

        Days are lowercased and deduplicated, times normalised to ``HH:MM``.
        Anything invalid gives a disabled schedule.
        """
        if not isinstance(days, list) or not days:
            return cls.disabled()

        tags: list[str] = []
        for day in days:
            tag = day.strip().lower() if isinstance(day, str) else None
            if tag not in WEEKDAYS:
                return cls.disabled()
            if tag not in tags:
                tags.append(tag)

        start = normalize_time(start_time)
        end = normalize_time(end_time)
        if start is None or end is None:
            return cls.disabled()

        return cls(enabled=True, days=tags, start_time=start, end_time=end)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Schedule":
        if not isinstance(data, dict) or data.get("enabled") is not True:
            return cls.disabled()
        return cls.from_window(data.get("days"), data.get("start_time"), data.get("end_time"))


@dataclass
class Stats:
    """Aggregate classification counters."""

    hidden_this_session: int = 0
    total_classified: int = 0
    last_updated: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hidden_this_session": self.hidden_this_session,
            "total_classified": self.total_classified,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Stats":
        return cls(
            hidden_this_session=int(data.get("hidden_this_session", 0)),
            total_classified=int(data.get("total_classified", 0)),
            last_updated=float(data.get("last_updated", 0.0)),
        )


@dataclass
class FilterState:
    """User-controlled filter settings, as persisted."""

    user_prompt: str = ""
    filter_enabled: bool = True
    schedule: Schedule = field(default_factory=Schedule.disabled)
    has_seen_onboarding: bool = False
    hide_shorts: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_prompt": self.user_prompt,
            "filter_enabled": self.filter_enabled,
            "schedule": self.schedule.to_dict(),
            "has_seen_onboarding": self.has_seen_onboarding,
            "hide_shorts": self.hide_shorts,
        }


def _minute_of_day(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)
    except ValueError:
        return None
