import itertools
from datetime import date

import pytest

from models import Itinerary, Window
from services.allocator import allocate
from services.reorder import (
    apply_order,
    move_activity,
    reorder_itinerary,
    reschedule,
    settle_schedule,
    total_duration_text,
)

from tests.conftest import make_activity


def _assert_contiguous(activities, start):
    assert activities[0].start_slot == start
    for prev, nxt in zip(activities, activities[1:]):
        assert nxt.start_slot == prev.start_slot + prev.duration_slots


def test_every_permutation_is_contiguous(sample_activities):
    for perm in itertools.permutations(sample_activities):
        _assert_contiguous(reschedule(perm, 18), 18)


def test_reschedule_rewrites_display_times(sample_activities):
    out = reschedule(sample_activities, 18)

    assert [a.time for a in out] == [
        "9:00 AM - 11:00 AM",
        "11:00 AM - 12:30 PM",
        "12:30 PM - 1:30 PM",
        "1:30 PM - 2:30 PM",
    ]
    assert [a.id for a in out] == [a.id for a in sample_activities]


def test_reordering_to_current_order_keeps_start_times(window):
    activities = allocate(["Museums", "Markets"], window).activities
    again = reschedule(apply_order(activities, [a.id for a in activities]), window.start)

    assert [a.start_slot for a in again] == [a.start_slot for a in activities]
    assert [a.start_slot for a in reschedule(again, window.start)] == [a.start_slot for a in again]


def test_reschedule_runs_past_window_without_clipping():
    long_day = [make_activity(f"Stop {i}", "3 hours") for i in range(5)]
    out = reschedule(long_day, 18)

    assert out[-1].start_slot + out[-1].duration_slots == 18 + 30
    assert out[-1].start_slot > 36


def test_move_activity_splices_like_drag_and_drop(sample_activities):
    a, b, c, d = sample_activities

    assert move_activity(sample_activities, 0, 2) == [b, c, a, d]
    assert move_activity(sample_activities, 3, 0) == [d, a, b, c]
    assert move_activity(sample_activities, 1, 1) == [a, b, c, d]


@pytest.mark.parametrize("src, dst", [(-1, 0), (0, 4), (9, 1)])
def test_move_activity_rejects_bad_indexes(sample_activities, src, dst):
    with pytest.raises(ValueError):
        move_activity(sample_activities, src, dst)


def test_apply_order_requires_exact_permutation(sample_activities):
    ids = [a.id for a in sample_activities]

    with pytest.raises(ValueError):
        apply_order(sample_activities, ids[:-1])
    with pytest.raises(ValueError):
        apply_order(sample_activities, ids[:-1] + [ids[0]])
    with pytest.raises(ValueError):
        apply_order(sample_activities, ids[:-1] + ["not-an-id"])

    reversed_ids = list(reversed(ids))
    assert [a.id for a in apply_order(sample_activities, reversed_ids)] == reversed_ids


def test_reorder_itinerary_recomputes_schedule_and_total(window):
    activities = reschedule([make_activity("A", "1 hour"), make_activity("B", "2 hours")], window.start)
    itinerary = Itinerary(
        date=date(2026, 11, 14),
        window=window,
        activities=activities,
        total_duration=total_duration_text(activities, window),
    )

    flipped = reorder_itinerary(itinerary, list(reversed(itinerary.activities)))

    assert [a.title for a in flipped.activities] == ["B", "A"]
    assert [a.start_slot for a in flipped.activities] == [18, 22]
    assert flipped.total_duration == "9 hours"
    # input itinerary is left untouched
    assert [a.title for a in itinerary.activities] == ["A", "B"]


def test_total_duration_covers_overflow():
    window = Window(start=18, end=20)
    activities = reschedule([make_activity("Zoo", "3 hours")], 18)
    assert total_duration_text(activities, window) == "3 hours"


def test_settle_schedule_sorts_clean_generated_times(window):
    late = make_activity("Late", "1 hour", start=26)
    early = make_activity("Early", "2 hours", start=18)

    settled = settle_schedule([late, early], window)

    assert [a.title for a in settled] == ["Early", "Late"]
    assert [a.start_slot for a in settled] == [18, 26]


def test_settle_schedule_repairs_overlaps(window):
    first = make_activity("First", "2 hours", start=18)
    clash = make_activity("Clash", "1 hour", start=19)

    settled = settle_schedule([first, clash], window)

    _assert_contiguous(settled, window.start)


def test_settle_schedule_lays_out_unknown_times(window):
    settled = settle_schedule([make_activity("A", "1 hour", start=30), make_activity("B", "1 hour")], window)
    assert [(a.title, a.start_slot) for a in settled] == [("A", 18), ("B", 20)]


def test_settle_schedule_relays_times_outside_the_window(window):
    early = make_activity("Breakfast", "1 hour", start=14)
    late = make_activity("Show", "2 hours", start=40)

    settled = settle_schedule([early, late], window)

    assert [(a.title, a.start_slot, a.end_slot) for a in settled] == [("Breakfast", 18, 20), ("Show", 20, 24)]
