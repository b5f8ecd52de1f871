# services/durations.py
from __future__ import annotations

import math
import re

from services.timeslots import SLOT_MINUTES, SLOTS_PER_DAY

DEFAULT_DURATION_SLOTS = 2  # one hour

_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)(?![a-z])", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(?<![\d.])(\d+)\s*(?:minutes?|mins?|m)(?![a-z])", re.IGNORECASE)


def parse_duration(text: str) -> int:
    """
    Free-form duration text to a whole number of half-hour slots.

    Understands '2 hours', '1.5 hours', '45 mins', '1 hour 30 mins' and short
    forms like '2h'. Partial slots round up. Anything unreadable, zero or longer
    than a day counts as one hour.
    """
    if not isinstance(text, str):
        return DEFAULT_DURATION_SLOTS
    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    total = 0.0
    if hours:
        total += float(hours.group(1)) * 60
    if minutes:
        total += float(minutes.group(1))
    # zero, absurdly long or overflowing values are treated as unreadable
    if not math.isfinite(total) or total <= 0 or total > SLOTS_PER_DAY * SLOT_MINUTES:
        return DEFAULT_DURATION_SLOTS
    return math.ceil(total / SLOT_MINUTES)


def format_duration(slots: int) -> str:
    """Canonical text for a slot count: '1 hour', '3 hours', '30 mins', '1 hour 30 mins'."""
    hours, minutes = divmod(max(slots, 0) * SLOT_MINUTES, 60)
    if hours and not minutes:
        return "1 hour" if hours == 1 else f"{hours} hours"
    if not hours:
        return f"{minutes} mins"
    unit = "hour" if hours == 1 else "hours"
    return f"{hours} {unit} {minutes} mins"


def normalize_duration(text: str) -> str:
    return format_duration(parse_duration(text))
