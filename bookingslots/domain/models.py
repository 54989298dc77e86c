"""
Domain models for time ranges, bookings and the parties around them.
"""

from dataclasses import dataclass, field
from typing import Optional

import pendulum
from pendulum import DateTime

from .exceptions import ConfigurationError
from .schedule import Schedule

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

MODE_NONE = "none"
MODE_MAX_PER_DAY = "max_per_day"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ConfigurationError(
                f"Start time {self.start} must be before end time {self.end}"
            )

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (half-open ranges)."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if the other range lies entirely inside this one."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def to_iso_pair(self) -> str:
        """Format as ``<startISO>|<endISO>`` in UTC."""
        start = self.start.in_timezone("UTC").to_iso8601_string()
        end = self.end.in_timezone("UTC").to_iso8601_string()
        return f"{start}|{end}"

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass
class Customer:
    """The person an appointment is booked for."""
    name: str
    phone: str
    email: Optional[str] = None


@dataclass
class Service:
    """A bookable service; its duration determines the slot length."""
    id: str
    business_id: str
    name: str
    duration_minutes: int
    price: float = 0.0


@dataclass
class Provider:
    """
    A staff member offering appointments.

    ``max_appointments_mode`` is either ``none`` or ``max_per_day``; in the
    latter case ``max_appointments_per_day`` caps the bookings of one day.
    """
    id: str
    business_id: str
    name: str
    schedule: Schedule
    timezone: str = "UTC"
    slug: str = ""
    max_appointments_mode: str = MODE_NONE
    max_appointments_per_day: int = 0
    google_refresh_token: Optional[str] = None

    def daily_cap(self) -> Optional[int]:
        """Return the active per-day booking cap, if any."""
        if self.max_appointments_mode == MODE_MAX_PER_DAY and self.max_appointments_per_day > 0:
            return self.max_appointments_per_day
        return None


@dataclass
class Booking:
    """
    A persisted appointment.

    Only bookings whose status is not ``cancelled`` occupy time.
    """
    business_id: str
    staff_id: str
    service_id: str
    customer: Customer
    start_time_utc: DateTime
    end_time_utc: DateTime
    status: str = STATUS_CONFIRMED
    id: str = ""
    price: float = 0.0
    notes: Optional[str] = None
    google_calendar_event_id: Optional[str] = None
    reminder_sent: bool = False
    reminder_preference: str = "both"
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))

    @property
    def is_busy(self) -> bool:
        return self.status != STATUS_CANCELLED

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time_utc, end=self.end_time_utc)

    def duration_minutes(self) -> int:
        return self.time_range.duration_minutes()
