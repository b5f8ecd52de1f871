# services/reorder.py
from __future__ import annotations

import logging
from typing import List, Sequence

from models import Activity, Itinerary, Window
from services.durations import format_duration, parse_duration
from services.timeslots import format_slot_range

log = logging.getLogger("planner")


def reschedule(activities: Sequence[Activity], window_start: int) -> List[Activity]:
    """
    Lay activities end to end from window_start in the given order.

    Durations are re-read from each activity's duration text. The result is
    contiguous for any order and is not clipped to the window end.
    """
    cursor = window_start
    out: List[Activity] = []
    for act in activities:
        slots = parse_duration(act.duration)
        out.append(act.model_copy(update={
            "start_slot": cursor,
            "duration_slots": slots,
            "duration": format_duration(slots),
            "time": format_slot_range(cursor, cursor + slots),
        }))
        cursor += slots
    return out


def move_activity(activities: Sequence[Activity], from_index: int, to_index: int) -> List[Activity]:
    """Drag-and-drop splice: take the item at from_index and drop it at to_index."""
    items = list(activities)
    if not (0 <= from_index < len(items) and 0 <= to_index < len(items)):
        raise ValueError(f"Indexes must be within 0..{len(items) - 1}.")
    if from_index == to_index:
        return items
    dragged = items.pop(from_index)
    items.insert(to_index, dragged)
    return items


def apply_order(activities: Sequence[Activity], ordered_ids: Sequence[str]) -> List[Activity]:
    by_id = {a.id: a for a in activities}
    if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
        raise ValueError("New order must list every activity id exactly once.")
    return [by_id[i] for i in ordered_ids]


def total_duration_text(activities: Sequence[Activity], window: Window) -> str:
    last_end = max((a.end_slot for a in activities if a.end_slot is not None), default=window.start)
    return format_duration(max(window.length, last_end - window.start))


def settle_schedule(activities: Sequence[Activity], window: Window) -> List[Activity]:
    """
    Put externally supplied activities into a valid schedule: sorted by start
    when every start is known, inside the window and nothing overlaps,
    otherwise laid end to end from the window start in the order given.
    """
    if any(a.start_slot is None for a in activities):
        return reschedule(activities, window.start)
    outside = [a.title for a in activities if a.start_slot < window.start or a.end_slot > window.end]
    if outside:
        log.info("Generated times fall outside the window; recomputing from window start", extra={
            "outside": outside, "window_start": window.start, "window_end": window.end,
        })
        return reschedule(activities, window.start)
    ordered = sorted(activities, key=lambda a: a.start_slot)
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.end_slot > nxt.start_slot:
            log.info("Generated times overlap; recomputing from window start", extra={
                "first": prev.title, "second": nxt.title,
            })
            return reschedule(activities, window.start)
    return ordered


def reorder_itinerary(itinerary: Itinerary, ordered_activities: Sequence[Activity]) -> Itinerary:
    activities = reschedule(ordered_activities, itinerary.window.start)
    end = activities[-1].end_slot if activities else itinerary.window.start
    if end > itinerary.window.end:
        log.info("Reordered plan runs past the window", extra={
            "window_end": itinerary.window.end,
            "plan_end": end,
        })
    return itinerary.model_copy(update={
        "activities": activities,
        "total_duration": total_duration_text(activities, itinerary.window),
    })
