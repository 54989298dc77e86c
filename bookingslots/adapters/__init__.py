"""
Adapters layer - Storage, calendar sync and notification integrations.
"""

from .google_calendar import CalendarEvent, GoogleCalendarClient, format_booking_for_calendar
from .memory_repository import InMemoryBookingRepository
from .notifications import LoggingNotifier, Notification

__all__ = [
    "CalendarEvent",
    "GoogleCalendarClient",
    "InMemoryBookingRepository",
    "LoggingNotifier",
    "Notification",
    "format_booking_for_calendar",
]
