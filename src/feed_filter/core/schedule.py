"""Schedule evaluation."""

from datetime import datetime

from feed_filter.core.entities import WEEKDAYS, Schedule


def weekday_tag(now: datetime) -> str:
    """Return the lowercase three-letter weekday tag for now."""
    return WEEKDAYS[now.weekday()]


def is_within_schedule(schedule: Schedule, now: datetime) -> bool:
    """Check whether now falls inside the schedule's weekly window.

    A disabled or incomplete schedule places no restriction and always answers
    True. The day check uses the current day only: for an overnight window the
    early-morning part belongs to whatever day it is now, not the day the
    window started on.
    """
    start = schedule.start_minute
    end = schedule.end_minute
    if not schedule.enabled or not schedule.days or start is None or end is None:
        return True

    if weekday_tag(now) not in schedule.days:
        return False

    now_minutes = now.hour * 60 + now.minute

    # Overnight window, e.g. 22:00 - 06:00
    if end < start:
        return now_minutes >= start or now_minutes <= end

    return start <= now_minutes <= end
