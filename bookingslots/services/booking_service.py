"""
Application services for slot queries and the booking transaction.

The service coordinates the repository, the optional calendar sync and
notification adapters, and delegates availability math to the domain-level
``SlotCalculator``. Collaborators are described by small protocols so they can
be swapped for in-memory stubs in tests.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Awaitable, List, Optional, Protocol, TypeVar

from pendulum import DateTime

from ..domain.exceptions import (
    AlreadyTerminalError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OutOfScheduleError,
    PastTimeError,
    UnavailableError,
)
from ..domain.models import STATUS_CANCELLED, Booking, Customer, Provider, Service, TimeRange
from ..domain.schedule import parse_hhmm
from ..domain.schedule_resolver import local_instant, working_windows_for_date
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Existing bookings are searched one day either side of the requested date
SEARCH_BAND = timedelta(days=1)


class BookingRepositoryProtocol(Protocol):
    """Persistence operations needed by the booking core."""

    async def get_provider(self, provider_id: str) -> Optional[Provider]:
        """Return the provider (staff member) or None."""

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Return the service or None."""

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return the booking or None."""

    async def list_busy_bookings(
        self,
        staff_id: str,
        start: DateTime,
        end: DateTime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Return non-cancelled bookings of a staff member overlapping [start, end)."""

    async def list_bookings_starting_between(self, start: DateTime, end: DateTime) -> List[Booking]:
        """Return bookings of every staff member starting within [start, end]."""

    async def add_booking(self, booking: Booking) -> Booking:
        """Persist a new booking; raise ConflictError if the staff start time is taken."""

    async def update_booking(self, booking: Booking) -> Booking:
        """Persist changes to an existing booking."""


class CalendarSyncProtocol(Protocol):
    """External calendar mirroring bookings of providers who connected one."""

    async def create_event(self, refresh_token: str, booking: Booking, service: Service) -> Optional[str]:
        """Create an event and return its id."""

    async def update_event(self, refresh_token: str, event_id: str, booking: Booking, service: Service) -> bool:
        """Move/update an existing event."""

    async def delete_event(self, refresh_token: str, event_id: str) -> bool:
        """Remove an event."""


class NotifierProtocol(Protocol):
    """Customer/provider notifications (SMS, e-mail)."""

    async def booking_confirmed(self, booking: Booking, service: Service, provider: Provider) -> bool:
        """Announce a new booking."""

    async def booking_rescheduled(self, booking: Booking, service: Service, provider: Provider) -> bool:
        """Announce a moved booking."""

    async def booking_cancelled(self, booking: Booking, service: Service, provider: Provider) -> bool:
        """Announce a cancellation."""

    async def booking_reminder(self, booking: Booking, service: Service, provider: Provider) -> bool:
        """Remind the customer of an upcoming booking."""


@dataclass
class BookingRequest:
    """A customer's request for one slot, in the provider's wall-clock time."""
    staff_id: str
    service_id: str
    date: date
    time: str  # "HH:MM"
    customer: Customer
    notes: Optional[str] = None
    reminder_preference: str = "both"


class BookingService:
    """
    Slot queries plus create/reschedule/cancel of bookings.

    Every state change (create, reschedule, cancel) re-reads and writes under
    a per-staff lock; the repository's uniqueness check on (staff, start)
    covers writers outside this process.
    Calendar sync and notifications run after the write and never fail the
    operation.
    """

    def __init__(
        self,
        repository: BookingRepositoryProtocol,
        slot_calculator: SlotCalculator,
        calendar_client: Optional[CalendarSyncProtocol] = None,
        notifier: Optional[NotifierProtocol] = None,
    ) -> None:
        self._repository = repository
        self._slot_calculator = slot_calculator
        self._calendar_client = calendar_client
        self._notifier = notifier
        # Entries disappear once no operation holds or waits on the lock
        self._staff_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def get_available_slots(
        self,
        *,
        staff_id: str,
        service_id: str,
        day: date,
        now: DateTime,
    ) -> List[str]:
        """
        Return the free ``HH:MM`` start times of a day in the provider's timezone.
        """
        provider = await self._require_provider(staff_id)
        service = await self._require_service(service_id, provider)

        windows = working_windows_for_date(provider.schedule, day, provider.timezone)
        if not windows:
            logger.debug("No working windows for %s on %s", provider.id, day)
            return []

        bookings = await self._bookings_around(provider, day)
        if self._cap_reached(provider, day, bookings):
            logger.debug("Daily cap reached for %s on %s", provider.id, day)
            return []

        slots = self._slot_calculator.find_available_slots(
            windows=windows,
            busy=[booking.time_range for booking in bookings],
            slot_length_minutes=service.duration_minutes,
            now=now,
            grid_origin=local_instant(day, 0, provider.timezone),
        )

        return sorted({slot.start.in_timezone(provider.timezone).format("HH:mm") for slot in slots})

    async def create_booking(self, request: BookingRequest, *, now: DateTime) -> Booking:
        """
        Validate the requested slot and persist a confirmed booking.

        Raises:
            NotFoundError: Unknown provider or service
            UnavailableError: Day off or daily cap reached
            OutOfScheduleError: Time outside every working window
            ConflictError: Overlaps an existing booking
            PastTimeError: Time not in the future
        """
        async with self._lock_for(request.staff_id):
            provider = await self._require_provider(request.staff_id)
            service = await self._require_service(request.service_id, provider)

            requested = await self._validate_slot(
                provider=provider,
                day=request.date,
                time=request.time,
                duration_minutes=service.duration_minutes,
                now=now,
            )

            booking = await self._repository.add_booking(
                Booking(
                    business_id=provider.business_id,
                    staff_id=provider.id,
                    service_id=service.id,
                    customer=request.customer,
                    start_time_utc=requested.start,
                    end_time_utc=requested.end,
                    price=service.price,
                    notes=request.notes,
                    reminder_preference=request.reminder_preference,
                    created_at=now,
                )
            )

        logger.info("Created booking %s for %s at %s", booking.id, provider.id, booking.start_time_utc)

        if provider.google_refresh_token and self._calendar_client is not None:
            event_id = await self._best_effort(
                "create calendar event",
                booking,
                self._calendar_client.create_event(provider.google_refresh_token, booking, service),
            )
            if event_id:
                booking = await self._repository.update_booking(
                    replace(booking, google_calendar_event_id=event_id)
                )

        if self._notifier is not None:
            await self._best_effort(
                "send confirmation",
                booking,
                self._notifier.booking_confirmed(booking, service, provider),
            )

        return booking

    async def reschedule_booking(
        self,
        booking_id: str,
        *,
        day: date,
        time: str,
        now: DateTime,
    ) -> Booking:
        """
        Move a confirmed booking to a new date/time, keeping its duration.

        The booking itself is ignored when looking for conflicts.
        """
        staff_id = (await self._require_booking(booking_id)).staff_id

        async with self._lock_for(staff_id):
            booking = await self._require_booking(booking_id)
            if not booking.is_busy:
                raise AlreadyTerminalError(f"Booking {booking_id} is cancelled and cannot be moved")

            provider = await self._require_provider(booking.staff_id)
            service = await self._require_service(booking.service_id, provider)

            requested = await self._validate_slot(
                provider=provider,
                day=day,
                time=time,
                duration_minutes=booking.duration_minutes(),
                now=now,
                exclude_booking_id=booking.id,
            )

            updated = await self._repository.update_booking(
                replace(
                    booking,
                    start_time_utc=requested.start,
                    end_time_utc=requested.end,
                    reminder_sent=False,
                )
            )

        logger.info("Rescheduled booking %s to %s", updated.id, updated.start_time_utc)

        if updated.google_calendar_event_id and provider.google_refresh_token and self._calendar_client is not None:
            await self._best_effort(
                "update calendar event",
                updated,
                self._calendar_client.update_event(
                    provider.google_refresh_token, updated.google_calendar_event_id, updated, service
                ),
            )

        if self._notifier is not None:
            await self._best_effort(
                "send reschedule notice",
                updated,
                self._notifier.booking_rescheduled(updated, service, provider),
            )

        return updated

    async def cancel_booking(self, booking_id: str) -> Booking:
        """
        Cancel a booking. Cancelling twice is an error, not a no-op.
        """
        staff_id = (await self._require_booking(booking_id)).staff_id

        async with self._lock_for(staff_id):
            booking = await self._require_booking(booking_id)
            if booking.status == STATUS_CANCELLED:
                raise AlreadyTerminalError(f"Booking {booking_id} is already cancelled")

            cancelled = await self._repository.update_booking(replace(booking, status=STATUS_CANCELLED))

        logger.info("Cancelled booking %s", cancelled.id)

        provider = await self._repository.get_provider(cancelled.staff_id)
        service = await self._repository.get_service(cancelled.service_id)

        if (
            cancelled.google_calendar_event_id
            and provider is not None
            and provider.google_refresh_token
            and self._calendar_client is not None
        ):
            await self._best_effort(
                "delete calendar event",
                cancelled,
                self._calendar_client.delete_event(
                    provider.google_refresh_token, cancelled.google_calendar_event_id
                ),
            )

        if self._notifier is not None and provider is not None and service is not None:
            await self._best_effort(
                "send cancellation notice",
                cancelled,
                self._notifier.booking_cancelled(cancelled, service, provider),
            )

        return cancelled

    async def _validate_slot(
        self,
        *,
        provider: Provider,
        day: date,
        time: str,
        duration_minutes: int,
        now: DateTime,
        exclude_booking_id: Optional[str] = None,
    ) -> TimeRange:
        """Check a wall-clock slot against schedule, cap, bookings and clock."""
        try:
            start_minutes = parse_hhmm(time)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if duration_minutes <= 0:
            raise ConfigurationError("Booking duration must be greater than zero")

        windows = working_windows_for_date(provider.schedule, day, provider.timezone)
        if not windows:
            raise UnavailableError(f"{provider.name} is not available on {day}")

        bookings = await self._bookings_around(provider, day, exclude_booking_id)
        if self._cap_reached(provider, day, bookings):
            raise UnavailableError(f"{provider.name} is fully booked on {day}")

        start = local_instant(day, start_minutes, provider.timezone)
        requested = TimeRange(start=start, end=start.add(minutes=duration_minutes))

        if not any(window.contains(requested) for window in windows):
            raise OutOfScheduleError(f"{time} on {day} is outside working hours")

        for booking in bookings:
            if requested.overlaps(booking.time_range):
                raise ConflictError(f"{time} on {day} overlaps booking {booking.id}")

        local_now = now.in_timezone(provider.timezone)
        today = date(local_now.year, local_now.month, local_now.day)
        if day < today or (day == today and start_minutes <= local_now.hour * 60 + local_now.minute):
            raise PastTimeError(f"{time} on {day} is in the past")

        return requested

    async def _bookings_around(
        self,
        provider: Provider,
        day: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        day_start = local_instant(day, 0, provider.timezone)
        return await self._repository.list_busy_bookings(
            provider.id,
            day_start - SEARCH_BAND,
            day_start + timedelta(days=1) + SEARCH_BAND,
            exclude_booking_id=exclude_booking_id,
        )

    @staticmethod
    def _cap_reached(provider: Provider, day: date, bookings: List[Booking]) -> bool:
        cap = provider.daily_cap()
        if cap is None:
            return False

        day_start = local_instant(day, 0, provider.timezone)
        day_end = day_start + timedelta(days=1)
        count = sum(
            1 for booking in bookings
            if booking.is_busy and day_start <= booking.start_time_utc < day_end
        )
        return count >= cap

    def _lock_for(self, staff_id: str) -> asyncio.Lock:
        lock = self._staff_locks.get(staff_id)
        if lock is None:
            lock = asyncio.Lock()
            self._staff_locks[staff_id] = lock
        return lock

    async def _require_provider(self, staff_id: str) -> Provider:
        provider = await self._repository.get_provider(staff_id)
        if provider is None:
            raise NotFoundError(f"Provider {staff_id} not found")
        return provider

    async def _require_service(self, service_id: str, provider: Provider) -> Service:
        service = await self._repository.get_service(service_id)
        if service is None or service.business_id != provider.business_id:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    async def _require_booking(self, booking_id: str) -> Booking:
        booking = await self._repository.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    async def _best_effort(action: str, booking: Booking, call: Awaitable[T]) -> Optional[T]:
        """Await a side effect, logging instead of raising on failure."""
        try:
            return await call
        except Exception as exc:
            logger.warning("Failed to %s for booking %s: %s", action, booking.id, exc)
            return None
