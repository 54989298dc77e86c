"""
Notification adapter that records and logs messages instead of delivering them.

SMS and e-mail delivery live outside this library; this adapter renders the
same messages so they can be inspected, logged, or forwarded by the host
application.
"""

import logging
from dataclasses import dataclass
from typing import List

from ..domain.models import Booking, Provider, Service
from ..domain.timezones import timezone_from_phone

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A rendered message for one recipient."""
    kind: str
    booking_id: str
    recipient: str
    message: str


class LoggingNotifier:
    """
    Renders booking notices in the customer's timezone and logs them.

    The customer's timezone is guessed from the phone number's country code.
    """

    def __init__(self):
        self.sent: List[Notification] = []

    async def booking_confirmed(self, booking: Booking, service: Service, provider: Provider) -> bool:
        return self._send("confirmation", booking, service, provider, "is confirmed")

    async def booking_rescheduled(self, booking: Booking, service: Service, provider: Provider) -> bool:
        return self._send("reschedule", booking, service, provider, "was moved")

    async def booking_cancelled(self, booking: Booking, service: Service, provider: Provider) -> bool:
        return self._send("cancellation", booking, service, provider, "was cancelled")

    async def booking_reminder(self, booking: Booking, service: Service, provider: Provider) -> bool:
        if booking.reminder_preference == "none":
            return False
        return self._send("reminder", booking, service, provider, "starts soon")

    def format_start(self, booking: Booking) -> str:
        """Start time as seen by the customer."""
        timezone = timezone_from_phone(booking.customer.phone)
        local = booking.start_time_utc.in_timezone(timezone)
        return f"{local.format('ddd, MMM D YYYY h:mm A')} ({timezone})"

    def _send(self, kind: str, booking: Booking, service: Service, provider: Provider, verb: str) -> bool:
        recipient = booking.customer.email or booking.customer.phone
        if not recipient:
            logger.warning("No contact for booking %s, skipping %s", booking.id, kind)
            return False

        message = (
            f"Hi {booking.customer.name}, your {service.name} with {provider.name} "
            f"on {self.format_start(booking)} {verb}."
        )
        self.sent.append(Notification(kind=kind, booking_id=booking.id, recipient=recipient, message=message))
        logger.info("[%s] %s -> %s", kind, recipient, message)
        return True
