"""
Tests for the BookingService orchestration layer.
"""

import asyncio
from dataclasses import replace
from datetime import date
from typing import List, Optional, Tuple

import pytest

from conftest import at, make_booking

from bookingslots.adapters.memory_repository import InMemoryBookingRepository
from bookingslots.adapters.notifications import LoggingNotifier
from bookingslots.domain.exceptions import (
    AlreadyTerminalError,
    CalendarSyncError,
    ConflictError,
    NotFoundError,
    OutOfScheduleError,
    PastTimeError,
    UnavailableError,
)
from bookingslots.domain.models import MODE_MAX_PER_DAY, STATUS_CANCELLED, Customer, Service
from bookingslots.domain.slot_calculator import SlotCalculator, SlotSettings
from bookingslots.services.booking_service import BookingRequest, BookingService

MONDAY = date(2024, 11, 25)
SUNDAY = date(2024, 11, 24)
BEFORE = at("2024-11-24 12:00")


class StubCalendarClient:
    """Records calendar calls; optionally fails every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def create_event(self, refresh_token, booking, service):
        self.calls.append(("create", None))
        if self.fail:
            raise CalendarSyncError("calendar down")
        return "evt-1"

    async def update_event(self, refresh_token, event_id, booking, service):
        self.calls.append(("update", event_id))
        if self.fail:
            raise CalendarSyncError("calendar down")
        return True

    async def delete_event(self, refresh_token, event_id):
        self.calls.append(("delete", event_id))
        if self.fail:
            raise CalendarSyncError("calendar down")
        return True


class FailingNotifier(LoggingNotifier):
    async def booking_confirmed(self, booking, service, provider):
        raise RuntimeError("sms gateway down")


class YieldingRepository(InMemoryBookingRepository):
    """Hands control back to the event loop on every call, like a real database driver."""

    async def get_booking(self, booking_id):
        await asyncio.sleep(0)
        return await super().get_booking(booking_id)

    async def list_busy_bookings(self, staff_id, start, end, exclude_booking_id=None):
        await asyncio.sleep(0)
        return await super().list_busy_bookings(staff_id, start, end, exclude_booking_id)

    async def add_booking(self, booking):
        await asyncio.sleep(0)
        return await super().add_booking(booking)

    async def update_booking(self, booking):
        await asyncio.sleep(0)
        return await super().update_booking(booking)


def _build_service(repository, calendar=None, notifier=None, **settings) -> BookingService:
    settings.setdefault("align_to_minutes", 30)
    return BookingService(
        repository=repository,
        slot_calculator=SlotCalculator(SlotSettings(**settings)),
        calendar_client=calendar,
        notifier=notifier,
    )


def _request(time: str, day: date = MONDAY, **kwargs) -> BookingRequest:
    return BookingRequest(
        staff_id=kwargs.pop("staff_id", "staff-1"),
        service_id=kwargs.pop("service_id", "haircut"),
        date=day,
        time=time,
        customer=Customer(name="Sam", phone="+44 20 7946 0000", email="sam@example.com"),
        **kwargs,
    )


def _slots(service: BookingService, day: date = MONDAY, now=BEFORE) -> List[str]:
    return asyncio.run(
        service.get_available_slots(staff_id="staff-1", service_id="haircut", day=day, now=now)
    )


def _create(service: BookingService, time: str, now=BEFORE, **kwargs):
    return asyncio.run(service.create_booking(_request(time, **kwargs), now=now))


class TestGetAvailableSlots:
    """Tests for the slot query."""

    def test_full_free_day(self, repository):
        times = _slots(_build_service(repository))

        assert len(times) == 16
        assert times[0] == "09:00"
        assert times[-1] == "16:30"

    def test_existing_booking_is_excluded(self, provider, service):
        repository = InMemoryBookingRepository(
            providers=[provider],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 11:00")],
        )

        times = _slots(_build_service(repository))

        assert "10:00" not in times
        assert "10:30" not in times
        assert "11:00" in times

    def test_cancelled_booking_does_not_block(self, provider, service):
        repository = InMemoryBookingRepository(
            providers=[provider],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 11:00", status=STATUS_CANCELLED)],
        )

        assert "10:00" in _slots(_build_service(repository))

    def test_day_off_has_no_slots(self, repository):
        assert _slots(_build_service(repository), day=SUNDAY) == []

    def test_past_slots_are_hidden(self, repository):
        times = _slots(_build_service(repository), now=at("2024-11-25 10:10"))

        assert times[0] == "10:30"

    def test_daily_cap_hides_the_day(self, provider, service):
        capped = replace(provider, max_appointments_mode=MODE_MAX_PER_DAY, max_appointments_per_day=1)
        repository = InMemoryBookingRepository(
            providers=[capped],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 10:30")],
        )

        assert _slots(_build_service(repository)) == []

    def test_times_are_in_provider_timezone(self, provider, service):
        local = replace(provider, timezone="America/New_York")
        repository = InMemoryBookingRepository(providers=[local], services=[service])

        times = _slots(_build_service(repository))

        assert times[0] == "09:00"
        assert times[-1] == "16:30"

    def test_unknown_provider(self, repository):
        service = _build_service(repository)

        with pytest.raises(NotFoundError):
            asyncio.run(
                service.get_available_slots(staff_id="nobody", service_id="haircut", day=MONDAY, now=BEFORE)
            )


class TestCreateBooking:
    """Tests for booking creation."""

    def test_creates_confirmed_booking(self, repository):
        notifier = LoggingNotifier()
        booking = _create(_build_service(repository, notifier=notifier), "10:00")

        assert booking.id
        assert booking.status == "confirmed"
        assert booking.start_time_utc == at("2024-11-25 10:00")
        assert booking.end_time_utc == at("2024-11-25 10:30")
        assert booking.price == 25.0
        assert [n.kind for n in notifier.sent] == ["confirmation"]

    def test_local_time_is_stored_as_utc(self, provider, service):
        local = replace(provider, timezone="America/New_York")
        repository = InMemoryBookingRepository(providers=[local], services=[service])

        booking = _create(_build_service(repository), "09:00")

        assert booking.start_time_utc == at("2024-11-25 14:00")

    def test_conflict_with_existing_booking(self, provider, service):
        repository = InMemoryBookingRepository(
            providers=[provider],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 11:00")],
        )

        with pytest.raises(ConflictError):
            _create(_build_service(repository), "10:30")

    def test_adjacent_booking_is_allowed(self, provider, service):
        repository = InMemoryBookingRepository(
            providers=[provider],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 11:00")],
        )

        booking = _create(_build_service(repository), "11:00")

        assert booking.start_time_utc == at("2024-11-25 11:00")

    @pytest.mark.parametrize("time", ["08:30", "16:45", "17:00"])
    def test_outside_working_hours(self, repository, time):
        with pytest.raises(OutOfScheduleError):
            _create(_build_service(repository), time)

    def test_day_off_is_unavailable(self, repository):
        with pytest.raises(UnavailableError):
            _create(_build_service(repository), "10:00", day=SUNDAY)

    def test_daily_cap_is_unavailable(self, provider, service):
        capped = replace(provider, max_appointments_mode=MODE_MAX_PER_DAY, max_appointments_per_day=1)
        repository = InMemoryBookingRepository(
            providers=[capped],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 10:30")],
        )

        with pytest.raises(UnavailableError, match="fully booked"):
            _create(_build_service(repository), "14:00")

    def test_same_day_past_time(self, repository):
        with pytest.raises(PastTimeError):
            _create(_build_service(repository), "10:00", now=at("2024-11-25 10:00"))

    def test_same_day_future_minute_is_accepted(self, repository):
        booking = _create(_build_service(repository), "10:01", now=at("2024-11-25 10:00"))

        assert booking.start_time_utc == at("2024-11-25 10:01")

    def test_past_date(self, repository):
        with pytest.raises(PastTimeError):
            _create(_build_service(repository), "10:00", day=date(2024, 11, 22), now=at("2024-11-25 08:00"))

    def test_unknown_service(self, repository):
        with pytest.raises(NotFoundError):
            _create(_build_service(repository), "10:00", service_id="massage")

    def test_service_of_other_business(self, provider, service):
        foreign = Service(id="massage", business_id="biz-2", name="Massage", duration_minutes=60)
        repository = InMemoryBookingRepository(providers=[provider], services=[service, foreign])

        with pytest.raises(NotFoundError):
            _create(_build_service(repository), "10:00", service_id="massage")

    def test_invalid_time_format(self, repository):
        with pytest.raises(ValueError):
            _create(_build_service(repository), "10h")

    def test_calendar_event_id_is_stored(self, provider, service):
        connected = replace(provider, google_refresh_token="refresh")
        repository = InMemoryBookingRepository(providers=[connected], services=[service])
        calendar = StubCalendarClient()

        booking = _create(_build_service(repository, calendar=calendar), "10:00")

        assert booking.google_calendar_event_id == "evt-1"
        stored = asyncio.run(repository.get_booking(booking.id))
        assert stored.google_calendar_event_id == "evt-1"

    def test_side_effect_failures_do_not_fail_the_booking(self, provider, service):
        connected = replace(provider, google_refresh_token="refresh")
        repository = InMemoryBookingRepository(providers=[connected], services=[service])
        service_layer = _build_service(
            repository, calendar=StubCalendarClient(fail=True), notifier=FailingNotifier()
        )

        booking = _create(service_layer, "10:00")

        assert booking.status == "confirmed"
        assert booking.google_calendar_event_id is None
        assert asyncio.run(repository.get_booking(booking.id)) is not None

    def test_concurrent_overlapping_requests(self, provider, service):
        """Validation and write are serialized per staff member."""
        repository = YieldingRepository(providers=[provider], services=[service])
        service_layer = _build_service(repository)

        async def book_twice():
            return await asyncio.gather(
                service_layer.create_booking(_request("10:00"), now=BEFORE),
                service_layer.create_booking(_request("10:15"), now=BEFORE),
                return_exceptions=True,
            )

        results = asyncio.run(book_twice())

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], ConflictError)
        stored = asyncio.run(repository.list_bookings())
        assert len(stored) == 1

    def test_repository_rejects_duplicate_start(self, repository):
        asyncio.run(repository.add_booking(make_booking("2024-11-25 10:00", "2024-11-25 10:30")))

        with pytest.raises(ConflictError):
            asyncio.run(repository.add_booking(make_booking("2024-11-25 10:00", "2024-11-25 10:30")))


class TestRescheduleBooking:
    """Tests for moving bookings."""

    def test_moves_booking_and_keeps_duration(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")

        moved = asyncio.run(
            service.reschedule_booking(booking.id, day=MONDAY, time="14:00", now=BEFORE)
        )

        assert moved.id == booking.id
        assert moved.start_time_utc == at("2024-11-25 14:00")
        assert moved.end_time_utc == at("2024-11-25 14:30")

    def test_overlap_with_itself_is_ignored(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")

        moved = asyncio.run(
            service.reschedule_booking(booking.id, day=MONDAY, time="10:15", now=BEFORE)
        )

        assert moved.start_time_utc == at("2024-11-25 10:15")

    def test_conflict_with_other_booking(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")
        _create(service, "11:00")

        with pytest.raises(ConflictError):
            asyncio.run(service.reschedule_booking(booking.id, day=MONDAY, time="10:45", now=BEFORE))

    def test_cancelled_booking_cannot_move(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")
        asyncio.run(service.cancel_booking(booking.id))

        with pytest.raises(AlreadyTerminalError):
            asyncio.run(service.reschedule_booking(booking.id, day=MONDAY, time="11:00", now=BEFORE))

    def test_calendar_event_is_updated(self, provider, service):
        connected = replace(provider, google_refresh_token="refresh")
        repository = InMemoryBookingRepository(providers=[connected], services=[service])
        calendar = StubCalendarClient()
        service_layer = _build_service(repository, calendar=calendar)
        booking = _create(service_layer, "10:00")

        asyncio.run(service_layer.reschedule_booking(booking.id, day=MONDAY, time="12:00", now=BEFORE))

        assert calendar.calls == [("create", None), ("update", "evt-1")]

    def test_unknown_booking(self, repository):
        with pytest.raises(NotFoundError):
            asyncio.run(
                _build_service(repository).reschedule_booking("missing", day=MONDAY, time="10:00", now=BEFORE)
            )


class TestCancelBooking:
    """Tests for cancellation."""

    def test_cancel_frees_the_slot(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")

        cancelled = asyncio.run(service.cancel_booking(booking.id))

        assert cancelled.status == STATUS_CANCELLED
        assert "10:00" in _slots(service)

    def test_cancel_twice_is_an_error(self, repository):
        service = _build_service(repository)
        booking = _create(service, "10:00")
        asyncio.run(service.cancel_booking(booking.id))

        with pytest.raises(AlreadyTerminalError):
            asyncio.run(service.cancel_booking(booking.id))

    def test_cancel_deletes_calendar_event_and_notifies(self, provider, service):
        connected = replace(provider, google_refresh_token="refresh")
        repository = InMemoryBookingRepository(providers=[connected], services=[service])
        calendar = StubCalendarClient()
        notifier = LoggingNotifier()
        service_layer = _build_service(repository, calendar=calendar, notifier=notifier)
        booking = _create(service_layer, "10:00")

        asyncio.run(service_layer.cancel_booking(booking.id))

        assert ("delete", "evt-1") in calendar.calls
        assert [n.kind for n in notifier.sent] == ["confirmation", "cancellation"]

    def test_calendar_failure_does_not_block_cancel(self, provider, service):
        connected = replace(provider, google_refresh_token="refresh")
        repository = InMemoryBookingRepository(
            providers=[connected],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 10:30", id="b-1", google_calendar_event_id="evt-9")],
        )
        service_layer = _build_service(repository, calendar=StubCalendarClient(fail=True))

        cancelled = asyncio.run(service_layer.cancel_booking("b-1"))

        assert cancelled.status == STATUS_CANCELLED

    def test_unknown_booking(self, repository):
        with pytest.raises(NotFoundError):
            asyncio.run(_build_service(repository).cancel_booking("missing"))


class TestConcurrentStateChanges:
    """Concurrent state changes for one staff member."""

    def _seeded(self, provider, service):
        repository = YieldingRepository(
            providers=[provider],
            services=[service],
            bookings=[make_booking("2024-11-25 10:00", "2024-11-25 10:30", id="b-1")],
        )
        notifier = LoggingNotifier()
        return repository, notifier, _build_service(repository, notifier=notifier)

    def test_cancel_during_reschedule_stays_cancelled(self, provider, service):
        repository, _, service_layer = self._seeded(provider, service)

        async def race():
            return await asyncio.gather(
                service_layer.reschedule_booking("b-1", day=MONDAY, time="11:00", now=BEFORE),
                service_layer.cancel_booking("b-1"),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        errors = [r for r in results if isinstance(r, Exception)]
        assert all(isinstance(e, AlreadyTerminalError) for e in errors)
        assert asyncio.run(repository.get_booking("b-1")).status == STATUS_CANCELLED

    def test_double_cancel_fails_once(self, provider, service):
        _, notifier, service_layer = self._seeded(provider, service)

        async def race():
            return await asyncio.gather(
                service_layer.cancel_booking("b-1"),
                service_layer.cancel_booking("b-1"),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyTerminalError)
        assert [n.kind for n in notifier.sent] == ["cancellation"]

    def test_staff_locks_are_released_after_use(self, repository):
        service_layer = _build_service(repository)

        _create(service_layer, "10:00")

        assert len(service_layer._staff_locks) == 0
