"""
Interval algebra on time ranges: merge, expand (buffers) and subtract.

All functions are pure and return new ``TimeRange`` objects.
"""

from datetime import timedelta
from typing import Iterable, List

from .models import TimeRange


def merge_intervals(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or touching time ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    sorted_ranges = sorted(ranges, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        # Touching ranges count as overlapping
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(current)

    return merged


def expand_intervals(
    ranges: Iterable[TimeRange],
    before: timedelta = timedelta(0),
    after: timedelta = timedelta(0),
) -> List[TimeRange]:
    """
    Grow every range by ``before`` at its start and ``after`` at its end.

    No merging happens here; callers merge afterwards if buffers introduced
    overlaps.
    """
    return [
        TimeRange(start=r.start - before, end=r.end + after)
        for r in ranges
    ]


def subtract_busy_from_working(
    working: TimeRange,
    busy: List[TimeRange],
) -> List[TimeRange]:
    """
    Subtract busy ranges from a working window, yielding free time ranges.

    ``busy`` must be sorted by start and disjoint (see ``merge_intervals``).

    Example:
    Working: 09:00 - 17:00
    Busy: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
    """
    free_ranges: List[TimeRange] = []
    cursor = working.start

    for block in busy:
        if block.end <= cursor:
            continue
        if block.start >= working.end:
            break

        free_end = min(block.start, working.end)
        if cursor < free_end:
            free_ranges.append(TimeRange(start=cursor, end=free_end))

        cursor = max(cursor, block.end)
        if cursor >= working.end:
            break

    if cursor < working.end:
        free_ranges.append(TimeRange(start=cursor, end=working.end))

    return free_ranges
