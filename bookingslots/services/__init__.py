"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import (
    BookingRepositoryProtocol,
    BookingRequest,
    BookingService,
    CalendarSyncProtocol,
    NotifierProtocol,
)
from .reminders import ReminderResult, ReminderService

__all__ = [
    "BookingRepositoryProtocol",
    "BookingRequest",
    "BookingService",
    "CalendarSyncProtocol",
    "NotifierProtocol",
    "ReminderResult",
    "ReminderService",
]
