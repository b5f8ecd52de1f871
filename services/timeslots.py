# services/timeslots.py
"""
Half-hour slot arithmetic.

A slot is a 30-minute unit counted from midnight: slot 0 is 12:00 AM,
slot 18 is 9:00 AM, slot 24 is noon and slot 48 is midnight again.
"""
from __future__ import annotations

import re
from typing import Optional

SLOTS_PER_HOUR = 2
SLOT_MINUTES = 30
SLOTS_PER_DAY = 48

_CLOCK_RE = re.compile(
    r"(?<!\d)(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m\.?(?![a-z])",
    re.IGNORECASE,
)
_CLOCK_24H_RE = re.compile(r"(?<!\d)([01]?\d|2[0-3]):([0-5]\d)(?!\d)")


def decode_slot(slot: int) -> str:
    """Render a slot as a 12-hour clock string, e.g. 19 -> '9:30 AM'."""
    if slot in (0, SLOTS_PER_DAY):
        return "12:00 AM"
    hour, half = divmod(slot, SLOTS_PER_HOUR)
    minute = half * SLOT_MINUTES
    if slot < 24:
        return f"{hour or 12}:{minute:02d} AM"
    if hour == 12:
        return f"12:{minute:02d} PM"
    return f"{hour - 12}:{minute:02d} PM"


def encode_slot(hour: int, minute: int = 0) -> int:
    """24-hour clock time to slot; minutes are floored to the half hour."""
    return hour * SLOTS_PER_HOUR + minute // SLOT_MINUTES


def parse_clock(text: str) -> Optional[int]:
    """
    Best-effort read of a clock time ('9:00 AM', '2pm', '14:30') into a slot.
    Only the first time in the text is used, so ranges resolve to their start.
    Returns None when nothing recognisable is found.
    """
    if not isinstance(text, str):
        return None
    m = _CLOCK_RE.search(text)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        hour %= 12
        if m.group(3).lower() == "p":
            hour += 12
        return encode_slot(hour, minute)
    m = _CLOCK_24H_RE.search(text)
    if m:
        return encode_slot(int(m.group(1)), int(m.group(2)))
    return None


def format_slot_range(start: int, end: int) -> str:
    return f"{decode_slot(start)} - {decode_slot(end)}"
