"""
Tests for the Google Calendar adapter. HTTP calls are replaced via monkeypatch.
"""

import asyncio
from typing import Any, Dict, List

import pytest
import requests

from conftest import make_booking

from bookingslots.adapters import google_calendar
from bookingslots.adapters.google_calendar import GoogleCalendarClient, format_booking_for_calendar
from bookingslots.domain.exceptions import CalendarSyncError


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Dict[str, Any] = None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")


class FakeRequests:
    """Records calls and answers from a per-method response."""

    exceptions = requests.exceptions

    def __init__(self, post=None, put=None, delete=None):
        self.calls: List[tuple] = []
        self._responses = {"post": post, "put": put, "delete": delete}

    def _answer(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if url == GoogleCalendarClient.TOKEN_ENDPOINT:
            return FakeResponse(payload={"access_token": "token-123"})
        response = self._responses[method]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._answer("post", url, **kwargs)

    def put(self, url, **kwargs):
        return self._answer("put", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._answer("delete", url, **kwargs)


@pytest.fixture
def booking():
    return make_booking("2024-11-25 10:00", "2024-11-25 10:30", id="b-1", price=25.0, notes="Short on the sides")


@pytest.fixture
def client():
    return GoogleCalendarClient(client_id="client", client_secret="secret")


class TestFormatBookingForCalendar:
    def test_event_fields(self, booking, service):
        event = format_booking_for_calendar(booking, service)

        assert event.title == "Haircut - Sam"
        assert event.description.splitlines() == [
            "Client: Sam",
            "Phone: +44 20 7946 0000",
            "Service: Haircut",
            "Price: $25.00",
            "Notes: Short on the sides",
        ]
        assert event.customer_email == "sam@example.com"

    def test_body_is_utc(self, client, booking, service):
        body = client.build_event_body(format_booking_for_calendar(booking, service))

        assert body["start"]["dateTime"] == "2024-11-25T10:00:00Z"
        assert body["end"]["timeZone"] == "UTC"
        assert body["attendees"] == [{"email": "sam@example.com"}]

    def test_body_without_attendees(self, client, booking, service):
        body = client.build_event_body(format_booking_for_calendar(booking, service), include_attendees=False)

        assert "attendees" not in body


class TestGoogleCalendarClient:
    """Tests for the HTTP operations."""

    def test_create_returns_event_id(self, monkeypatch, client, booking, service):
        fake = FakeRequests(post=FakeResponse(payload={"id": "evt-1"}))
        monkeypatch.setattr(google_calendar, "requests", fake)

        event_id = asyncio.run(client.create_event("refresh", booking, service))

        assert event_id == "evt-1"
        token_call, create_call = fake.calls
        assert token_call[2]["data"]["grant_type"] == "refresh_token"
        assert create_call[2]["headers"]["Authorization"] == "Bearer token-123"

    def test_update_sends_put(self, monkeypatch, client, booking, service):
        fake = FakeRequests(put=FakeResponse())
        monkeypatch.setattr(google_calendar, "requests", fake)

        assert asyncio.run(client.update_event("refresh", "evt-1", booking, service))
        assert fake.calls[-1][1].endswith("/calendars/primary/events/evt-1")

    @pytest.mark.parametrize("status", [204, 410])
    def test_delete_treats_gone_as_success(self, monkeypatch, client, status):
        monkeypatch.setattr(google_calendar, "requests", FakeRequests(delete=FakeResponse(status)))

        assert asyncio.run(client.delete_event("refresh", "evt-1"))

    def test_delete_failure(self, monkeypatch, client):
        monkeypatch.setattr(google_calendar, "requests", FakeRequests(delete=FakeResponse(500)))

        with pytest.raises(CalendarSyncError, match="HTTP 500"):
            asyncio.run(client.delete_event("refresh", "evt-1"))

    def test_network_error_is_wrapped(self, monkeypatch, client, booking, service):
        fake = FakeRequests(post=requests.exceptions.ConnectionError("no route"))
        monkeypatch.setattr(google_calendar, "requests", fake)

        with pytest.raises(CalendarSyncError, match="create"):
            asyncio.run(client.create_event("refresh", booking, service))

    def test_token_without_access_token(self, monkeypatch, client):
        fake = FakeRequests()
        fake._answer = lambda method, url, **kwargs: FakeResponse(payload={})
        monkeypatch.setattr(google_calendar, "requests", fake)

        with pytest.raises(CalendarSyncError, match="access_token"):
            client.get_access_token("refresh")
