"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    AlreadyTerminalError,
    CalendarSyncError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OutOfScheduleError,
    PastTimeError,
    SchedulingError,
    UnavailableError,
)
from .intervals import expand_intervals, merge_intervals, subtract_busy_from_working
from .models import Booking, Customer, Provider, Service, TimeRange
from .schedule import LegacySchedule, StructuredSchedule, schedule_from_dict
from .schedule_resolver import working_hours_for_date, working_windows_for_date
from .slot_calculator import SlotCalculator, SlotSettings, available_slots_for_window
from .timezones import local_time_to_utc, timezone_from_phone

__all__ = [
    "AlreadyTerminalError",
    "Booking",
    "CalendarSyncError",
    "ConfigurationError",
    "ConflictError",
    "Customer",
    "LegacySchedule",
    "NotFoundError",
    "OutOfScheduleError",
    "PastTimeError",
    "Provider",
    "SchedulingError",
    "Service",
    "SlotCalculator",
    "SlotSettings",
    "StructuredSchedule",
    "TimeRange",
    "UnavailableError",
    "available_slots_for_window",
    "expand_intervals",
    "local_time_to_utc",
    "merge_intervals",
    "schedule_from_dict",
    "subtract_busy_from_working",
    "timezone_from_phone",
    "working_hours_for_date",
    "working_windows_for_date",
]
