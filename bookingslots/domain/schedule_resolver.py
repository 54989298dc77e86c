"""
Resolve a provider schedule into the working windows of one calendar date.
"""

from dataclasses import dataclass
from datetime import date
from typing import List

from pendulum import DateTime

from .exceptions import ConfigurationError
from .models import TimeRange
from .schedule import DAY_NAMES, LegacySchedule, Schedule, StructuredSchedule, parse_hhmm
from .timezones import local_time_to_utc


@dataclass(frozen=True)
class DailyHours:
    """Wall-clock working hours (``HH:MM``) for a single window of a day."""
    start_time: str
    end_time: str

    def start_minutes(self) -> int:
        return parse_hhmm(self.start_time)

    def end_minutes(self) -> int:
        return parse_hhmm(self.end_time)


def day_name(day: date) -> str:
    """Return the short lowercase weekday name (``mon`` .. ``sun``)."""
    return DAY_NAMES[day.isoweekday() - 1]


def working_hours_for_date(schedule: Schedule, day: date) -> List[DailyHours]:
    """
    Determine the wall-clock working hours of a date.

    An override for the date wins over the weekly pattern; an unavailable
    override closes the day. Otherwise every weekly entry for that weekday is
    a window (split shifts). Legacy schedules open one window on listed days.
    """
    if isinstance(schedule, StructuredSchedule):
        override = schedule.override_for(day)
        if override is not None:
            if override.is_unavailable:
                return []
            return [DailyHours(override.start_time, override.end_time)]

        name = day_name(day)
        hours = [
            DailyHours(entry.start_time, entry.end_time)
            for entry in schedule.days
            if entry.day_of_week == name
        ]
        return sorted(hours, key=lambda h: h.start_minutes())

    if isinstance(schedule, LegacySchedule):
        if not schedule.opening_time or not schedule.closing_time:
            return []
        if day_name(day) not in schedule.work_day_names():
            return []
        return [DailyHours(schedule.opening_time, schedule.closing_time)]

    raise ConfigurationError(f"Unsupported schedule type: {type(schedule).__name__}")


def local_instant(day: date, minutes: int, timezone: str) -> DateTime:
    """Wall-clock minute-of-day on ``day`` in ``timezone`` as a UTC instant."""
    return local_time_to_utc(day.year, day.month, day.day, minutes // 60, minutes % 60, timezone)


def working_windows_for_date(schedule: Schedule, day: date, timezone: str) -> List[TimeRange]:
    """
    Resolve the working windows of a date as UTC time ranges.

    Raises:
        ConfigurationError: If an entry does not end after it starts
    """
    windows: List[TimeRange] = []

    for hours in working_hours_for_date(schedule, day):
        start_minutes = hours.start_minutes()
        end_minutes = hours.end_minutes()
        if end_minutes <= start_minutes:
            raise ConfigurationError(
                f"Working hours {hours.start_time}-{hours.end_time} on {day} must end after they start"
            )
        windows.append(
            TimeRange(
                start=local_instant(day, start_minutes, timezone),
                end=local_instant(day, end_minutes, timezone),
            )
        )

    return windows
