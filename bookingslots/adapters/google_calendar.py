"""
Google Calendar client mirroring bookings into a provider's primary calendar.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarSyncError
from ..domain.models import Booking, Service

logger = logging.getLogger(__name__)


@dataclass
class CalendarEvent:
    """Event payload derived from a booking."""
    title: str
    description: str
    start_time_utc: DateTime
    end_time_utc: DateTime
    customer_email: Optional[str] = None


def format_booking_for_calendar(booking: Booking, service: Service) -> CalendarEvent:
    """Build the calendar event shown to the provider for a booking."""
    lines = [
        f"Client: {booking.customer.name}",
        f"Phone: {booking.customer.phone}",
        f"Service: {service.name}",
        f"Price: ${booking.price:.2f}",
    ]
    if booking.notes:
        lines.append(f"Notes: {booking.notes}")

    return CalendarEvent(
        title=f"{service.name} - {booking.customer.name}",
        description="\n".join(lines),
        start_time_utc=booking.start_time_utc,
        end_time_utc=booking.end_time_utc,
        customer_email=booking.customer.email or None,
    )


class GoogleCalendarClient:
    """
    Client for Google Calendar API event operations.

    Each call exchanges the provider's refresh token for a short-lived access
    token. HTTP work is blocking (``requests``) and runs in a worker thread so
    the booking service's event loop is not held up.
    """

    CALENDAR_API_ENDPOINT = "https://www.googleapis.com/calendar/v3"
    TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

    def __init__(self, client_id: str, client_secret: str, timeout: int = 30):
        """
        Initialize the calendar client.

        Args:
            client_id: Google OAuth client ID
            client_secret: Google OAuth client secret
            timeout: Request timeout in seconds
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    async def create_event(self, refresh_token: str, booking: Booking, service: Service) -> Optional[str]:
        event = format_booking_for_calendar(booking, service)
        return await asyncio.to_thread(self._create_event_sync, refresh_token, event)

    async def update_event(self, refresh_token: str, event_id: str, booking: Booking, service: Service) -> bool:
        event = format_booking_for_calendar(booking, service)
        return await asyncio.to_thread(self._update_event_sync, refresh_token, event_id, event)

    async def delete_event(self, refresh_token: str, event_id: str) -> bool:
        return await asyncio.to_thread(self._delete_event_sync, refresh_token, event_id)

    def get_access_token(self, refresh_token: str) -> str:
        """
        Exchange a refresh token for an access token.

        Raises:
            CalendarSyncError: If the token endpoint fails
        """
        try:
            response = requests.post(
                self.TOKEN_ENDPOINT,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarSyncError(f"Failed to refresh Google access token: {e}") from e

        token = data.get("access_token")
        if not token:
            raise CalendarSyncError("Google token response did not contain an access_token")
        return token

    def build_event_body(self, event: CalendarEvent, include_attendees: bool = True) -> Dict[str, Any]:
        """Serialize an event for the Calendar API (times in UTC)."""
        body: Dict[str, Any] = {
            "summary": event.title,
            "description": event.description,
            "start": {
                "dateTime": event.start_time_utc.in_timezone("UTC").to_iso8601_string(),
                "timeZone": "UTC",
            },
            "end": {
                "dateTime": event.end_time_utc.in_timezone("UTC").to_iso8601_string(),
                "timeZone": "UTC",
            },
        }
        if include_attendees and event.customer_email:
            body["attendees"] = [{"email": event.customer_email}]
        return body

    def _headers(self, refresh_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token(refresh_token)}",
            "Content-Type": "application/json",
        }

    def _create_event_sync(self, refresh_token: str, event: CalendarEvent) -> Optional[str]:
        url = f"{self.CALENDAR_API_ENDPOINT}/calendars/primary/events"
        try:
            response = requests.post(
                url,
                headers=self._headers(refresh_token),
                json=self.build_event_body(event),
                timeout=self.timeout,
            )
            response.raise_for_status()
            created = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarSyncError(f"Failed to create Google Calendar event: {e}") from e

        event_id = created.get("id")
        logger.info("Created Google Calendar event %s", event_id)
        return event_id

    def _update_event_sync(self, refresh_token: str, event_id: str, event: CalendarEvent) -> bool:
        url = f"{self.CALENDAR_API_ENDPOINT}/calendars/primary/events/{event_id}"
        try:
            response = requests.put(
                url,
                headers=self._headers(refresh_token),
                json=self.build_event_body(event, include_attendees=False),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise CalendarSyncError(f"Failed to update Google Calendar event {event_id}: {e}") from e

        logger.info("Updated Google Calendar event %s", event_id)
        return True

    def _delete_event_sync(self, refresh_token: str, event_id: str) -> bool:
        url = f"{self.CALENDAR_API_ENDPOINT}/calendars/primary/events/{event_id}"
        try:
            response = requests.delete(url, headers=self._headers(refresh_token), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CalendarSyncError(f"Failed to delete Google Calendar event {event_id}: {e}") from e

        # 410 means the event was already gone
        if response.status_code in (200, 204, 410):
            logger.info("Deleted Google Calendar event %s", event_id)
            return True

        raise CalendarSyncError(
            f"Failed to delete Google Calendar event {event_id}: HTTP {response.status_code}"
        )
