"""
In-memory booking repository, optionally seeded from a JSON file.
"""

import json
import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConflictError, NotFoundError
from ..domain.models import Booking, Customer, Provider, Service
from ..domain.schedule import schedule_from_dict

logger = logging.getLogger(__name__)


class InMemoryBookingRepository:
    """
    Keeps providers, services and bookings in dictionaries.

    Mirrors the guarantees of the production store that the booking core
    relies on: at most one busy booking per (staff member, start instant).
    Returned objects are copies, so callers cannot mutate stored state.
    """

    def __init__(
        self,
        providers: Optional[List[Provider]] = None,
        services: Optional[List[Service]] = None,
        bookings: Optional[List[Booking]] = None,
    ):
        self._providers: Dict[str, Provider] = {p.id: p for p in providers or []}
        self._services: Dict[str, Service] = {s.id: s for s in services or []}
        self._bookings: Dict[str, Booking] = {}
        for booking in bookings or []:
            self._store_new(booking)

    @classmethod
    def from_json_file(cls, data_file: Path) -> "InMemoryBookingRepository":
        """
        Load seed data from a JSON file.

        Expected keys: ``providers``, ``services`` and ``bookings`` (camelCase
        records as exported by the web application).

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file content is invalid
        """
        if not data_file.exists():
            raise FileNotFoundError(f"Data file not found: {data_file}")

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Data file must contain an object at the root level.")

        try:
            providers = [_provider_from_record(r) for r in data.get("providers", [])]
            services = [_service_from_record(r) for r in data.get("services", [])]
            bookings = [_booking_from_record(r) for r in data.get("bookings", [])]
        except KeyError as exc:
            raise ValueError(f"Missing field {exc} in {data_file}") from exc

        logger.debug(
            "Loaded %d providers, %d services, %d bookings from %s",
            len(providers), len(services), len(bookings), data_file,
        )
        return cls(providers=providers, services=services, bookings=bookings)

    def to_json_file(self, data_file: Path) -> None:
        """Write the current state back in the format read by ``from_json_file``."""
        data = {
            "providers": [_provider_to_record(p) for p in self._providers.values()],
            "services": [_service_to_record(s) for s in self._services.values()],
            "bookings": [
                _booking_to_record(b)
                for b in sorted(self._bookings.values(), key=lambda b: b.start_time_utc)
            ],
        }
        with open(data_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.debug("Wrote %d bookings to %s", len(self._bookings), data_file)

    async def get_provider(self, provider_id: str) -> Optional[Provider]:
        return self._providers.get(provider_id)

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return replace(booking) if booking else None

    async def list_busy_bookings(
        self,
        staff_id: str,
        start: DateTime,
        end: DateTime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        found = [
            replace(booking) for booking in self._bookings.values()
            if booking.staff_id == staff_id
            and booking.is_busy
            and booking.id != exclude_booking_id
            and booking.start_time_utc < end
            and booking.end_time_utc > start
        ]
        return sorted(found, key=lambda b: b.start_time_utc)

    async def list_bookings_starting_between(self, start: DateTime, end: DateTime) -> List[Booking]:
        found = [
            replace(booking) for booking in self._bookings.values()
            if start <= booking.start_time_utc <= end
        ]
        return sorted(found, key=lambda b: b.start_time_utc)

    async def list_bookings(self) -> List[Booking]:
        return sorted((replace(b) for b in self._bookings.values()), key=lambda b: b.start_time_utc)

    async def add_booking(self, booking: Booking) -> Booking:
        return replace(self._store_new(booking))

    async def update_booking(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise NotFoundError(f"Booking {booking.id} not found")
        self._check_unique_start(booking)
        self._bookings[booking.id] = replace(booking)
        return replace(booking)

    def _store_new(self, booking: Booking) -> Booking:
        stored = replace(booking, id=booking.id or uuid.uuid4().hex)
        if stored.id in self._bookings:
            raise ConflictError(f"Booking {stored.id} already exists")
        self._check_unique_start(stored)
        self._bookings[stored.id] = stored
        return stored

    def _check_unique_start(self, booking: Booking) -> None:
        if not booking.is_busy:
            return
        for other in self._bookings.values():
            if (
                other.id != booking.id
                and other.is_busy
                and other.staff_id == booking.staff_id
                and other.start_time_utc == booking.start_time_utc
            ):
                raise ConflictError(
                    f"Staff {booking.staff_id} already has booking {other.id} at {booking.start_time_utc}"
                )


def _parse_instant(value: str) -> DateTime:
    parsed = pendulum.parse(value, tz="UTC")
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse datetime: {value}")
    return parsed.in_timezone("UTC")


def _provider_from_record(record: Dict[str, Any]) -> Provider:
    return Provider(
        id=record["id"],
        business_id=record["businessId"],
        name=record.get("name", record["id"]),
        schedule=schedule_from_dict(record.get("schedule", {})),
        timezone=record.get("timezone", "UTC"),
        slug=record.get("slug", ""),
        max_appointments_mode=record.get("maxAppointmentsMode", "none"),
        max_appointments_per_day=int(record.get("maxAppointmentsPerDay", 0)),
        google_refresh_token=record.get("googleRefreshToken"),
    )


def _service_from_record(record: Dict[str, Any]) -> Service:
    return Service(
        id=record["id"],
        business_id=record["businessId"],
        name=record.get("name", record["id"]),
        duration_minutes=int(record["duration"]),
        price=float(record.get("price", 0)),
    )


def _booking_from_record(record: Dict[str, Any]) -> Booking:
    customer = record.get("customer", {})
    created_at = record.get("createdAt")
    return Booking(
        id=record.get("id", ""),
        business_id=record["businessId"],
        staff_id=record["staffId"],
        service_id=record["serviceId"],
        customer=Customer(
            name=customer.get("name", ""),
            phone=customer.get("phone", ""),
            email=customer.get("email"),
        ),
        start_time_utc=_parse_instant(record["startTimeUtc"]),
        end_time_utc=_parse_instant(record["endTimeUtc"]),
        status=record.get("status", "confirmed"),
        price=float(record.get("price", 0)),
        notes=record.get("notes"),
        google_calendar_event_id=record.get("googleCalendarEventId"),
        reminder_sent=bool(record.get("reminderSent", False)),
        reminder_preference=record.get("reminderPreference", "both"),
        created_at=_parse_instant(created_at) if created_at else pendulum.now("UTC"),
    )


def _instant_to_string(value: DateTime) -> str:
    return value.in_timezone("UTC").to_iso8601_string()


def _provider_to_record(provider: Provider) -> Dict[str, Any]:
    return {
        "id": provider.id,
        "businessId": provider.business_id,
        "name": provider.name,
        "timezone": provider.timezone,
        "slug": provider.slug,
        "maxAppointmentsMode": provider.max_appointments_mode,
        "maxAppointmentsPerDay": provider.max_appointments_per_day,
        "googleRefreshToken": provider.google_refresh_token,
        "schedule": provider.schedule.model_dump(mode="json", by_alias=True),
    }


def _service_to_record(service: Service) -> Dict[str, Any]:
    return {
        "id": service.id,
        "businessId": service.business_id,
        "name": service.name,
        "duration": service.duration_minutes,
        "price": service.price,
    }


def _booking_to_record(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "businessId": booking.business_id,
        "staffId": booking.staff_id,
        "serviceId": booking.service_id,
        "customer": {
            "name": booking.customer.name,
            "phone": booking.customer.phone,
            "email": booking.customer.email,
        },
        "startTimeUtc": _instant_to_string(booking.start_time_utc),
        "endTimeUtc": _instant_to_string(booking.end_time_utc),
        "status": booking.status,
        "price": booking.price,
        "notes": booking.notes,
        "googleCalendarEventId": booking.google_calendar_event_id,
        "reminderSent": booking.reminder_sent,
        "reminderPreference": booking.reminder_preference,
        "createdAt": _instant_to_string(booking.created_at),
    }
