from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from calico.integrations.calendar import (
    CalendarEvent,
    CalendarProviderError,
    GoogleCalendarClient,
    event_from_payload,
)

TIME_MIN = datetime(2026, 3, 1, tzinfo=UTC)
TIME_MAX = datetime(2026, 3, 8, tzinfo=UTC)


def make_client(handler, access_token: str | None = "service-token") -> GoogleCalendarClient:
    return GoogleCalendarClient(
        base_url="https://calendar.test/v3/",
        access_token=access_token,
        timeout_seconds=2.0,
        transport=httpx.MockTransport(handler),
    )


def timed(event_id: str, start: str, end: str, **fields) -> dict:
    return {"id": event_id, "start": {"dateTime": start}, "end": {"dateTime": end}, **fields}


def test_event_mapping_normalizes_offsets_to_utc() -> None:
    event = event_from_payload(
        timed(
            "evt-1",
            "2026-03-02T09:00:00-05:00",
            "2026-03-02T11:00:00-05:00",
            summary="Tutoría ISIS3710",
            recurringEventId="rec-1",
            attendees=[{"email": "ana@example.edu"}, {"displayName": "no email"}],
        ),
    )

    assert event is not None
    assert event.start_at == datetime(2026, 3, 2, 14, 0, tzinfo=UTC)
    assert event.recurring_event_id == "rec-1"
    assert event.attendees == ["ana@example.edu"]


def test_cancelled_and_all_day_events_are_skipped() -> None:
    assert event_from_payload({"id": "x", "status": "cancelled"}) is None
    assert event_from_payload({"id": "y", "start": {"date": "2026-03-02"}, "end": {"date": "2026-03-03"}}) is None


@pytest.mark.asyncio
async def test_list_events_follows_page_tokens() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "pageToken" not in request.url.params:
            return httpx.Response(
                200,
                json={
                    "items": [
                        timed("evt-1", "2026-03-02T09:00:00Z", "2026-03-02T10:00:00Z"),
                        {"id": "evt-day", "start": {"date": "2026-03-03"}, "end": {"date": "2026-03-04"}},
                    ],
                    "nextPageToken": "page-2",
                },
            )
        return httpx.Response(200, json={"items": [timed("evt-2", "2026-03-04T09:00:00Z", "2026-03-04T10:00:00Z")]})

    events = await make_client(handler).list_events("tutor-token", "primary", TIME_MIN, TIME_MAX)

    assert [event.id for event in events] == ["evt-1", "evt-2"]
    assert len(requests) == 2
    assert requests[0].url.path == "/v3/calendars/primary/events"
    assert requests[0].url.params["singleEvents"] == "true"
    assert requests[0].headers["Authorization"] == "Bearer tutor-token"
    assert requests[1].url.params["pageToken"] == "page-2"


@pytest.mark.asyncio
async def test_error_status_raises_provider_error() -> None:
    client = make_client(lambda request: httpx.Response(401, json={"error": "invalid_grant"}))

    with pytest.raises(CalendarProviderError):
        await client.list_events("expired", "primary", TIME_MIN, TIME_MAX)


@pytest.mark.asyncio
async def test_transport_error_raises_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CalendarProviderError):
        await make_client(handler).delete_event("primary", "evt-1")


@pytest.mark.asyncio
async def test_missing_token_fails_before_any_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    event = CalendarEvent(
        id=None,
        title="Tutoría ISIS3710",
        start_at=datetime(2026, 3, 2, 9, tzinfo=UTC),
        end_at=datetime(2026, 3, 2, 10, tzinfo=UTC),
    )
    with pytest.raises(CalendarProviderError):
        await make_client(handler, access_token=None).create_event("primary", event)
    assert calls == []


@pytest.mark.asyncio
async def test_create_event_sends_attendees_and_returns_provider_id() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        body = dict(seen["body"], id="evt-new", htmlLink="https://calendar.test/evt-new")
        return httpx.Response(200, json=body)

    event = CalendarEvent(
        id=None,
        title="Tutoría ISIS3710",
        start_at=datetime(2026, 3, 2, 9, tzinfo=UTC),
        end_at=datetime(2026, 3, 2, 10, tzinfo=UTC),
        location="ML-512",
        attendees=["ana@example.edu", "carla@example.edu"],
    )

    created = await make_client(handler).create_event("primary", event)

    assert seen["method"] == "POST"
    assert seen["body"]["summary"] == "Tutoría ISIS3710"
    assert seen["body"]["start"] == {"dateTime": "2026-03-02T09:00:00+00:00", "timeZone": "UTC"}
    assert seen["body"]["attendees"] == [{"email": "ana@example.edu"}, {"email": "carla@example.edu"}]
    assert created.id == "evt-new"
    assert created.html_link == "https://calendar.test/evt-new"
    assert created.location == "ML-512"
