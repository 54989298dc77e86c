"""
Shared fixtures for the booking core tests.
"""

import pendulum
import pytest

from bookingslots.adapters.memory_repository import InMemoryBookingRepository
from bookingslots.domain.models import Booking, Customer, Provider, Service
from bookingslots.domain.schedule import schedule_from_dict


def at(value: str, tz: str = "UTC"):
    """Parse ``YYYY-MM-DD HH:mm`` in the given timezone."""
    return pendulum.parse(value, tz=tz)


@pytest.fixture
def weekday_schedule():
    return schedule_from_dict(
        {
            "days": [
                {"dayOfWeek": day, "startTime": "09:00", "endTime": "17:00"}
                for day in ("mon", "tue", "wed", "thu", "fri")
            ]
        }
    )


@pytest.fixture
def provider(weekday_schedule):
    return Provider(
        id="staff-1",
        business_id="biz-1",
        name="Alex",
        schedule=weekday_schedule,
        timezone="UTC",
    )


@pytest.fixture
def service():
    return Service(id="haircut", business_id="biz-1", name="Haircut", duration_minutes=30, price=25.0)


@pytest.fixture
def repository(provider, service):
    return InMemoryBookingRepository(providers=[provider], services=[service])


def make_booking(start: str, end: str, staff_id: str = "staff-1", **kwargs) -> Booking:
    return Booking(
        business_id="biz-1",
        staff_id=staff_id,
        service_id="haircut",
        customer=kwargs.pop("customer", Customer(name="Sam", phone="+44 20 7946 0000", email="sam@example.com")),
        start_time_utc=at(start),
        end_time_utc=at(end),
        **kwargs,
    )
