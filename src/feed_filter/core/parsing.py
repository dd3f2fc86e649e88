"""Parsing of untrusted oracle output.

The oracle returns free-form text. Nothing in it is trusted until the first
top-level JSON object has been cut out and structurally validated. Every parser
here fails open: malformed output means "show" for classification and
"no schedule" for schedule extraction.
"""

import json
import logging
import re
from typing import Any, Optional, Sequence

from feed_filter.core.entities import Decision, Item, Schedule
from feed_filter.core.errors import ParseError

logger = logging.getLogger(__name__)


def fix_json(text: str) -> str:
    """Remove trailing commas before } or ]."""
    return re.sub(r",(\s*[}\]])", r"\1", text)


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level ``{...}`` span in text."""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract and decode the first JSON object in text.

    Raises:
        ParseError: no object span, invalid JSON, or a non-object value
    """
    span = find_json_object(text or "")
    if span is None:
        raise ParseError("No JSON object found in response", text)

    try:
        parsed = json.loads(fix_json(span))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}", text) from e

    if not isinstance(parsed, dict):
        raise ParseError("Response JSON is not an object", text)
    return parsed


def parse_classification_response(text: str, items: Sequence[Item]) -> dict[str, Decision]:
    """Map a numbered ``{"1": "SHOW", "2": "HIDE"}`` reply back to item ids.

    Every item gets a decision. Anything other than a case-insensitive "HIDE"
    under the item's 1-based index counts as SHOW.
    """
    try:
        parsed = extract_json_object(text)
    except ParseError as e:
        logger.warning("Classification response unusable, showing all %d items: %s", len(items), e)
        logger.debug("Raw response: %s", (text or "")[:500])
        return {item.id: Decision.SHOW for item in items}

    result: dict[str, Decision] = {}
    for index, item in enumerate(items, 1):
        value = parsed.get(str(index))
        if isinstance(value, str) and value.upper() == Decision.HIDE.value:
            result[item.id] = Decision.HIDE
        else:
            result[item.id] = Decision.SHOW
    return result


def parse_schedule_response(text: str) -> Schedule:
    """Validate a schedule reply; any defect collapses to a disabled schedule."""
    try:
        parsed = extract_json_object(text)
    except ParseError as e:
        logger.warning("Schedule response unusable: %s", e)
        return Schedule.disabled()

    if parsed.get("enabled") is not True:
        return Schedule.disabled()

    schedule = Schedule.from_window(parsed.get("days"), parsed.get("startTime"), parsed.get("endTime"))
    if not schedule.enabled:
        logger.info(
            "Schedule rejected: days=%r window %r-%r",
            parsed.get("days"),
            parsed.get("startTime"),
            parsed.get("endTime"),
        )
    return schedule
