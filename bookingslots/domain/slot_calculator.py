"""
Availability engine: turns working windows and existing bookings into
offerable appointment slots.

Pure functions over pendulum instants. The caller supplies ``now``; nothing
here reads the clock or touches storage.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Union

from pendulum import DateTime

from .exceptions import ConfigurationError
from .intervals import expand_intervals, merge_intervals, subtract_busy_from_working
from .models import TimeRange

MICROSECONDS_PER_MINUTE = 60 * 1_000_000


def _epoch_microseconds(dt: DateTime) -> int:
    return dt.int_timestamp * 1_000_000 + dt.microsecond


def ceil_to_grid(
    dt: DateTime,
    minutes: Optional[int],
    origin: Optional[DateTime] = None,
) -> DateTime:
    """
    Round ``dt`` up to the next multiple of ``minutes`` counted from ``origin``.

    The origin defaults to the Unix epoch. Ceiling division, never floor or
    round: an instant already on the grid is returned unchanged. A missing or
    non-positive grid returns ``dt`` as is.
    """
    if not minutes or minutes <= 0:
        return dt

    grid = minutes * MICROSECONDS_PER_MINUTE
    base = _epoch_microseconds(origin) if origin is not None else 0
    offset = _epoch_microseconds(dt) - base

    aligned = -(-offset // grid) * grid
    return dt.add(microseconds=aligned - offset)


def generate_slots_from_free(
    free_intervals: Iterable[TimeRange],
    slot_length: timedelta,
    slot_step: timedelta,
    align_to_minutes: Optional[int] = None,
    grid_origin: Optional[DateTime] = None,
) -> List[TimeRange]:
    """
    Cut free intervals into discrete slots.

    For each free interval the first start is the interval start rounded up to
    the alignment grid; slots of ``slot_length`` follow every ``slot_step`` as
    long as they still end inside the interval.
    """
    slots: List[TimeRange] = []

    for free in free_intervals:
        slot_start = ceil_to_grid(free.start, align_to_minutes, grid_origin)

        while slot_start + slot_length <= free.end:
            slots.append(TimeRange(start=slot_start, end=slot_start + slot_length))
            slot_start = slot_start + slot_step

    return slots


def clip_to_earliest(
    free_intervals: Iterable[TimeRange],
    earliest_start: DateTime,
) -> List[TimeRange]:
    """Drop free time before ``earliest_start``, truncating straddling intervals."""
    clipped: List[TimeRange] = []

    for free in free_intervals:
        if free.end <= earliest_start:
            continue
        start = max(free.start, earliest_start)
        if start < free.end:
            clipped.append(TimeRange(start=start, end=free.end))

    return clipped


def available_slots_for_window(
    working_start: DateTime,
    working_end: DateTime,
    bookings: Iterable[TimeRange] = (),
    slot_length_minutes: int = 0,
    slot_step_minutes: Optional[int] = None,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
    earliest_start: Optional[DateTime] = None,
    align_to_minutes: Optional[int] = None,
    return_iso: bool = False,
    grid_origin: Optional[DateTime] = None,
) -> Union[List[TimeRange], List[str]]:
    """
    Compute the offerable slots of one working window.

    Algorithm:
    1. Keep bookings that can reach the window once buffers are applied
    2. Expand them by the buffers and merge into disjoint busy intervals
    3. Subtract busy time from the window
    4. Clip free time to ``earliest_start`` (lead time)
    5. Cut the remaining free time into grid aligned slots

    Args:
        working_start: Start of the working window
        working_end: End of the working window
        bookings: Busy time ranges, not necessarily limited to this window
        slot_length_minutes: Length of each slot, must be positive
        slot_step_minutes: Distance between slot starts, defaults to the length
        buffer_before_minutes: Blocked time before each booking
        buffer_after_minutes: Blocked time after each booking
        earliest_start: No slot may start before this instant
        align_to_minutes: Grid slot starts are rounded up to
        return_iso: Return ``"<startISO>|<endISO>"`` strings instead of ranges
        grid_origin: Origin of the alignment grid, Unix epoch when omitted

    Returns:
        Slots as TimeRange objects, or ISO pair strings

    Raises:
        ConfigurationError: If the slot length/step is not positive or a
            buffer is negative
    """
    if not slot_length_minutes or slot_length_minutes <= 0:
        raise ConfigurationError("slot_length_minutes is required and must be > 0")
    if slot_step_minutes is not None and slot_step_minutes <= 0:
        raise ConfigurationError("slot_step_minutes must be > 0")
    if buffer_before_minutes < 0 or buffer_after_minutes < 0:
        raise ConfigurationError("Booking buffers cannot be negative")

    if working_start >= working_end:
        return []

    slot_length = timedelta(minutes=slot_length_minutes)
    slot_step = timedelta(minutes=slot_step_minutes or slot_length_minutes)
    buffer_before = timedelta(minutes=buffer_before_minutes)
    buffer_after = timedelta(minutes=buffer_after_minutes)

    # Step 1: Only bookings whose buffered span reaches into the window matter
    relevant = [
        booking for booking in bookings
        if booking.end + buffer_after > working_start
        and booking.start - buffer_before < working_end
    ]

    # Step 2: Buffered, disjoint busy intervals
    busy = merge_intervals(expand_intervals(relevant, buffer_before, buffer_after))

    # Step 3: Free time inside the window
    working = TimeRange(start=working_start, end=working_end)
    free = subtract_busy_from_working(working, busy)

    # Step 4: Lead time
    if earliest_start is not None:
        free = clip_to_earliest(free, earliest_start)

    # Step 5: Discrete slots
    slots = generate_slots_from_free(free, slot_length, slot_step, align_to_minutes, grid_origin)

    if return_iso:
        return [slot.to_iso_pair() for slot in slots]
    return slots


@dataclass(frozen=True)
class SlotSettings:
    """Slot knobs that stay fixed for a provider or deployment."""
    slot_step_minutes: Optional[int] = None
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    align_to_minutes: Optional[int] = None
    lead_time_minutes: int = 0


class SlotCalculator:
    """
    Applies one set of ``SlotSettings`` to working windows.

    ``now`` is always passed in by the caller so results are deterministic.
    """

    def __init__(self, settings: Optional[SlotSettings] = None):
        self.settings = settings or SlotSettings()

    def earliest_start(self, now: DateTime) -> DateTime:
        """First instant a slot may start at, given the lead time."""
        return now.add(minutes=self.settings.lead_time_minutes)

    def find_available_slots(
        self,
        windows: Iterable[TimeRange],
        busy: Iterable[TimeRange],
        slot_length_minutes: int,
        now: Optional[DateTime] = None,
        grid_origin: Optional[DateTime] = None,
    ) -> List[TimeRange]:
        """
        Compute slots across several working windows of one day.

        Returns slots ordered by start with duplicates removed.
        """
        busy_ranges = list(busy)
        earliest = self.earliest_start(now) if now is not None else None
        found: List[TimeRange] = []

        for window in windows:
            found.extend(
                available_slots_for_window(
                    working_start=window.start,
                    working_end=window.end,
                    bookings=busy_ranges,
                    slot_length_minutes=slot_length_minutes,
                    slot_step_minutes=self.settings.slot_step_minutes,
                    buffer_before_minutes=self.settings.buffer_before_minutes,
                    buffer_after_minutes=self.settings.buffer_after_minutes,
                    earliest_start=earliest,
                    align_to_minutes=self.settings.align_to_minutes,
                    grid_origin=grid_origin,
                )
            )

        unique = {(slot.start, slot.end): slot for slot in found}
        return sorted(unique.values(), key=lambda s: s.start)
