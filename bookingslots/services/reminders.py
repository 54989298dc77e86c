"""
Appointment reminder job.

Meant to run every few minutes: it picks confirmed bookings starting roughly
an hour from ``now`` that have not been reminded yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from pendulum import DateTime

from ..domain.models import STATUS_CONFIRMED
from .booking_service import BookingRepositoryProtocol, NotifierProtocol

logger = logging.getLogger(__name__)


@dataclass
class ReminderResult:
    processed: int
    sent: int


class ReminderService:
    """Sends one reminder per booking inside the reminder window."""

    def __init__(
        self,
        repository: BookingRepositoryProtocol,
        notifier: NotifierProtocol,
        window_start_minutes: int = 55,
        window_end_minutes: int = 65,
    ) -> None:
        if window_end_minutes < window_start_minutes:
            raise ValueError("Reminder window must not end before it starts")
        self._repository = repository
        self._notifier = notifier
        self._window_start = window_start_minutes
        self._window_end = window_end_minutes

    async def send_due_reminders(self, now: DateTime) -> ReminderResult:
        window_start = now.add(minutes=self._window_start)
        window_end = now.add(minutes=self._window_end)
        logger.info("Looking for bookings between %s and %s", window_start, window_end)

        candidates = await self._repository.list_bookings_starting_between(window_start, window_end)
        due = [
            booking for booking in candidates
            if booking.status == STATUS_CONFIRMED
            and not booking.reminder_sent
            and booking.reminder_preference != "none"
        ]

        sent = 0
        for booking in due:
            provider = await self._repository.get_provider(booking.staff_id)
            service = await self._repository.get_service(booking.service_id)
            if provider is None or service is None:
                logger.warning("Skipping reminder for booking %s: provider or service missing", booking.id)
                continue

            try:
                delivered = await self._notifier.booking_reminder(booking, service, provider)
            except Exception as exc:
                logger.warning("Failed to send reminder for booking %s: %s", booking.id, exc)
                continue

            if delivered:
                await self._repository.update_booking(replace(booking, reminder_sent=True))
                sent += 1

        logger.info("Reminder job complete. Sent %d/%d reminders", sent, len(due))
        return ReminderResult(processed=len(due), sent=sent)
