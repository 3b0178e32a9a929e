"""Busy-interval merging, free-slot derivation and grid alignment."""
from datetime import timedelta

from models import BusyInstance, FreeSlot, Interval


def merge_intervals(intervals):
    """Merge overlapping or touching intervals into disjoint, sorted ones."""
    if not intervals:
        return []
    ordered = sorted(intervals, key=lambda i: (i.start, i.end))
    merged = [Interval(ordered[0].start, ordered[0].end)]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(Interval(current.start, current.end))
    return merged


def _clip(interval, day_start, day_end, default_label):
    if interval.end <= day_start or interval.start >= day_end:
        return None
    start = max(interval.start, day_start)
    end = min(interval.end, day_end)
    if end <= start:
        return None
    return BusyInstance(start, end, getattr(interval, 'label', None) or default_label)


def clip_busy_intervals(instances, day_start, day_end, extra_busy=()):
    """Labelled busy intervals clipped to [day_start, day_end), empties dropped."""
    busy = []
    for instance in instances:
        clipped = _clip(instance, day_start, day_end, 'Busy')
        if clipped is not None:
            busy.append(clipped)
    for interval in extra_busy or ():
        clipped = _clip(interval, day_start, day_end, 'excludeTime')
        if clipped is not None:
            busy.append(clipped)
    return busy


def free_slots_for_day(instances, day_start, day_end, min_duration, extra_busy=()):
    """Gaps between merged busy time within the day that last at least `min_duration`."""
    merged = merge_intervals(clip_busy_intervals(instances, day_start, day_end, extra_busy))
    free = []
    cursor = day_start
    for busy in merged:
        assert day_start <= busy.start < busy.end <= day_end
        if busy.start > cursor and busy.start - cursor >= min_duration:
            free.append(Interval(cursor, busy.start))
        if busy.end > cursor:
            cursor = busy.end
    if day_end > cursor and day_end - cursor >= min_duration:
        free.append(Interval(cursor, day_end))
    return free


def align_to_grid(free_intervals, meeting_length, grid_minutes, calendar):
    """Trim each free interval to the widest span whose start and end sit on the grid.

    At most one slot per free interval: earliest grid start up to the latest
    grid start plus the meeting length.
    """
    if not isinstance(meeting_length, timedelta):
        meeting_length = timedelta(minutes=meeting_length)
    aligned = []
    for interval in free_intervals:
        earliest_start = calendar.ceil_to_grid(interval.start, grid_minutes)
        latest_start = calendar.floor_to_grid(interval.end - meeting_length, grid_minutes)
        if latest_start < earliest_start:
            continue
        aligned.append(FreeSlot(earliest_start, latest_start + meeting_length))
    return aligned
