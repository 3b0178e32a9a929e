from datetime import timedelta

import pytest

from conftest import utc
from intervals import align_to_grid, clip_busy_intervals, free_slots_for_day, merge_intervals
from models import BusyInstance, Interval

DAY_START = utc(2024, 6, 12, 8, 0)
DAY_END = utc(2024, 6, 12, 16, 0)
HALF_HOUR = timedelta(minutes=30)


def at(hour, minute=0):
    return utc(2024, 6, 12, hour, minute)


def busy(start, end, label='Busy'):
    return BusyInstance(at(*start), at(*end), label)


def test_merge_empty():
    assert merge_intervals([]) == []


def test_merge_overlapping_and_touching():
    merged = merge_intervals([
        Interval(at(11), at(12)),
        Interval(at(9), at(10)),
        Interval(at(9, 30), at(10, 15)),
        Interval(at(10, 15), at(10, 30)),
    ])
    assert merged == [Interval(at(9), at(10, 30)), Interval(at(11), at(12))]


def test_merge_keeps_contained_interval_extent():
    merged = merge_intervals([Interval(at(9), at(12)), Interval(at(10), at(11))])
    assert merged == [Interval(at(9), at(12))]


def test_merge_does_not_mutate_input():
    original = [Interval(at(10), at(11)), Interval(at(9), at(10, 30))]
    snapshot = list(original)
    merge_intervals(original)
    assert original == snapshot


def test_merge_is_idempotent_and_disjoint():
    intervals = [
        Interval(at(13), at(14)),
        Interval(at(8), at(9)),
        Interval(at(8, 30), at(9, 30)),
        Interval(at(9, 30), at(9, 45)),
        Interval(at(15), at(15)),
    ]
    merged = merge_intervals(intervals)
    assert merge_intervals(merged) == merged
    for left, right in zip(merged, merged[1:]):
        assert left.end < right.start


def test_clip_busy_intervals_drops_outside_and_labels_extras():
    clipped = clip_busy_intervals(
        [busy((7, 0), (8, 30), 'Standup'), busy((16, 0), (17, 0))],
        DAY_START, DAY_END,
        [Interval(at(12), at(13))],
    )
    assert clipped == [
        BusyInstance(at(8), at(8, 30), 'Standup'),
        BusyInstance(at(12), at(13), 'excludeTime'),
    ]


def test_free_day_is_one_interval():
    assert free_slots_for_day([], DAY_START, DAY_END, HALF_HOUR) == [Interval(DAY_START, DAY_END)]


def test_free_slots_around_busy_hour():
    free = free_slots_for_day([busy((9, 0), (10, 0))], DAY_START, DAY_END, HALF_HOUR)
    assert free == [Interval(at(8), at(9)), Interval(at(10), DAY_END)]


def test_free_slots_respect_minimum_duration():
    instances = [busy((8, 20), (9, 0)), busy((9, 20), (15, 0))]
    free = free_slots_for_day(instances, DAY_START, DAY_END, HALF_HOUR)
    assert free == [Interval(at(15), DAY_END)]


def test_free_slots_include_extra_busy():
    free = free_slots_for_day([busy((9, 0), (10, 0))], DAY_START, DAY_END, HALF_HOUR,
                              [Interval(at(12), at(13))])
    assert free == [Interval(at(8), at(9)), Interval(at(10), at(12)), Interval(at(13), DAY_END)]


def test_free_and_busy_reconstruct_the_day():
    instances = [busy((7, 0), (8, 15)), busy((9, 0), (9, 5)), busy((9, 5), (11, 0)),
                 busy((10, 0), (10, 30)), busy((15, 55), (18, 0))]
    free = free_slots_for_day(instances, DAY_START, DAY_END, timedelta(0))
    merged = merge_intervals(clip_busy_intervals(instances, DAY_START, DAY_END))
    pieces = sorted(free + merged, key=lambda i: i.start)
    assert pieces[0].start == DAY_START
    assert pieces[-1].end == DAY_END
    for left, right in zip(pieces, pieces[1:]):
        assert left.end == right.start


def test_align_to_grid_widest_span(utc_calendar):
    free = [Interval(at(8), at(9, 10)), Interval(at(9, 40), DAY_END)]
    slots = align_to_grid(free, HALF_HOUR, 30, utc_calendar)
    assert [(s.start, s.end) for s in slots] == [(at(8), at(9)), (at(10), DAY_END)]


def test_align_to_grid_emits_one_slot_per_interval(utc_calendar):
    slots = align_to_grid([Interval(at(8), at(12))], timedelta(minutes=15), 15, utc_calendar)
    assert len(slots) == 1
    assert (slots[0].start, slots[0].end) == (at(8), at(12))


def test_align_to_grid_drops_intervals_too_small_for_the_grid(utc_calendar):
    assert align_to_grid([Interval(at(9, 10), at(9, 45))], HALF_HOUR, 30, utc_calendar) == []


def test_align_to_grid_accepts_minutes(utc_calendar):
    slots = align_to_grid([Interval(at(8, 5), at(9, 5))], 30, 15, utc_calendar)
    assert (slots[0].start, slots[0].end) == (at(8, 15), at(9, 0))


@pytest.mark.parametrize('grid', [5, 15, 20, 30, 45, 60])
def test_aligned_slots_sit_on_grid(new_york, grid):
    start = new_york.make_instant(2024, 6, 12, 8, 7)
    end = new_york.make_instant(2024, 6, 12, 15, 53)
    slots = align_to_grid([Interval(start, end)], HALF_HOUR, grid, new_york)
    for slot in slots:
        local_start = new_york.local_datetime(slot.start)
        local_last_start = new_york.local_datetime(slot.end - HALF_HOUR)
        assert (local_start.hour * 60 + local_start.minute) % grid == 0
        assert (local_last_start.hour * 60 + local_last_start.minute) % grid == 0
        assert slot.end - slot.start >= HALF_HOUR
        assert start <= slot.start and slot.end <= end


def test_align_to_grid_stays_inside_repeated_hour(new_york):
    free = Interval(utc(2024, 11, 3, 6, 10), utc(2024, 11, 3, 8))
    slots = align_to_grid([free], HALF_HOUR, 30, new_york)
    assert [(s.start, s.end) for s in slots] == [(utc(2024, 11, 3, 6, 30), utc(2024, 11, 3, 8))]
