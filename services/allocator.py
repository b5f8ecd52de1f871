# services/allocator.py
"""
Deterministic day planner.

Interest tags are turned into a schedule by walking a fixed, priority-ordered
catalogue and greedily packing each matching template into the window. This
is also the fallback whenever the text generator cannot be used.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from models import Activity, Window
from services.durations import format_duration, parse_duration
from services.timeslots import format_slot_range

log = logging.getLogger("planner")

MIN_ACTIVITIES = 3
# marks titles of plans built here instead of by the text generator
FALLBACK_TITLE_PREFIX = "Simple Plan: "


@dataclass(frozen=True)
class CandidateTemplate:
    interest: str
    title: str
    description: str
    duration: str
    # room the window must still have after this activity for it to be placed
    slack_slots: int = 0

    @property
    def duration_slots(self) -> int:
        return parse_duration(self.duration)

    def fits(self, cursor: int, window: Window) -> bool:
        return cursor + self.duration_slots + self.slack_slots <= window.end

    def instantiate(self, start: int, budget: Optional[str]) -> Activity:
        slots = self.duration_slots
        return Activity(
            title=self.title,
            description=self.description,
            time=format_slot_range(start, start + slots),
            start_slot=start,
            duration=format_duration(slots),
            duration_slots=slots,
            budget_level=budget,
        )


# Placement order; the user's click order never matters.
CATALOGUE: Tuple[CandidateTemplate, ...] = (
    CandidateTemplate(
        "Museums", "Natural History Museum",
        "Explore dinosaurs and interactive exhibits", "2 hours",
    ),
    CandidateTemplate(
        "Markets", "Borough Market Food Adventure",
        "Sample delicious treats and explore the historic food market", "1.5 hours",
    ),
    CandidateTemplate(
        "Hidden Gems", "Neal's Yard Secret Garden",
        "Discover this colourful hidden courtyard in Covent Garden", "45 mins",
    ),
    CandidateTemplate(
        "Animals & Zoos", "London Zoo Experience",
        "Meet amazing animals and enjoy interactive exhibits", "3 hours", slack_slots=1,
    ),
    CandidateTemplate(
        "Historical Sites", "Tower of London Family Tour",
        "Explore the historic fortress and see the Crown Jewels", "2.5 hours",
    ),
    CandidateTemplate(
        "Parks", "Hyde Park Adventure",
        "Playground time and picnic lunch", "1.5 hours",
    ),
    CandidateTemplate(
        "Art Galleries", "Tate Modern Family Workshop",
        "Interactive art activities and child-friendly exhibitions", "1.5 hours",
    ),
    CandidateTemplate(
        "Adventure Activities", "Thames Clipper Boat Adventure",
        "Exciting boat ride along the Thames with stunning city views", "1 hour",
    ),
    CandidateTemplate(
        "Great Food", "Family-Friendly Café",
        "Delicious treats and a child-friendly menu", "1 hour",
    ),
    CandidateTemplate(
        "Theatre & Shows", "West End Family Show",
        "Age-appropriate musical or puppet show in the theatre district", "2 hours", slack_slots=1,
    ),
)

FALLBACK_TEMPLATE = CandidateTemplate(
    "*", "London Eye", "Family fun with amazing city views", "1 hour",
)

INTERESTS: Tuple[str, ...] = tuple(t.interest for t in CATALOGUE)


@dataclass
class Allocation:
    activities: List[Activity] = field(default_factory=list)
    cursor: int = 0
    # the window could not even hold the fallback, which was placed anyway
    overflow: bool = False


def allocate(
    interests: Iterable[str],
    window: Window,
    budget: Optional[str] = None,
    *,
    catalogue: Sequence[CandidateTemplate] = CATALOGUE,
    fallback: CandidateTemplate = FALLBACK_TEMPLATE,
    min_activities: int = MIN_ACTIVITIES,
) -> Allocation:
    selected = {i.strip().casefold() for i in interests if isinstance(i, str)}
    cursor = window.start
    placed: List[Activity] = []
    skipped: List[str] = []

    for template in catalogue:
        if template.interest.casefold() not in selected:
            continue
        if not template.fits(cursor, window):
            skipped.append(template.interest)
            continue
        placed.append(template.instantiate(cursor, budget))
        cursor += template.duration_slots

    overflow = False
    room = window.end - cursor
    if not placed or (len(placed) < min_activities and room >= fallback.duration_slots):
        start = cursor if placed else window.start
        if start + fallback.duration_slots > window.end:
            overflow = True
            log.warning("Window too short for the fallback activity; placing it anyway", extra={
                "window_start": window.start,
                "window_end": window.end,
                "fallback_slots": fallback.duration_slots,
            })
        placed.append(fallback.instantiate(start, budget))
        cursor = start + fallback.duration_slots

    log.info("Allocated activities", extra={
        "placed": [a.title for a in placed],
        "skipped": skipped,
        "window_start": window.start,
        "window_end": window.end,
        "cursor": cursor,
    })
    return Allocation(activities=placed, cursor=cursor, overflow=overflow)
