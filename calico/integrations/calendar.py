"""Calendar provider client (Google Calendar v3 REST API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx

from calico.core.config import Settings, get_settings
from calico.shared.utils import ensure_utc

logger = logging.getLogger(__name__)


class CalendarProviderError(Exception):
    """Raised when the calendar provider cannot be reached or rejects a call."""


@dataclass(slots=True)
class CalendarEvent:
    id: str | None
    title: str
    start_at: datetime
    end_at: datetime
    location: str | None = None
    description: str | None = None
    html_link: str | None = None
    recurring_event_id: str | None = None
    attendees: list[str] = field(default_factory=list)


class CalendarProvider(Protocol):
    """Operations the booking core needs from an external calendar."""

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        """List single (already expanded) events in a time range."""

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        """Create event and return it with provider id and link."""

    async def update_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        """Replace an existing event."""

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete event by id."""


def _parse_event_time(value: dict[str, Any] | None) -> datetime | None:
    if not value or "dateTime" not in value:
        # all-day events carry only "date" and are not bookable availability
        return None
    return ensure_utc(datetime.fromisoformat(value["dateTime"]))


def event_from_payload(payload: dict[str, Any]) -> CalendarEvent | None:
    """Map a Google Calendar event resource, skipping cancelled or all-day events."""
    if payload.get("status") == "cancelled":
        return None
    start_at = _parse_event_time(payload.get("start"))
    end_at = _parse_event_time(payload.get("end"))
    if start_at is None or end_at is None:
        return None
    return CalendarEvent(
        id=payload.get("id"),
        title=payload.get("summary") or "",
        start_at=start_at,
        end_at=end_at,
        location=payload.get("location"),
        description=payload.get("description"),
        html_link=payload.get("htmlLink"),
        recurring_event_id=payload.get("recurringEventId"),
        attendees=[item["email"] for item in payload.get("attendees", []) if item.get("email")],
    )


def event_to_payload(event: CalendarEvent) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "summary": event.title,
        "start": {"dateTime": ensure_utc(event.start_at).isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": ensure_utc(event.end_at).isoformat(), "timeZone": "UTC"},
    }
    if event.location:
        payload["location"] = event.location
    if event.description:
        payload["description"] = event.description
    if event.attendees:
        payload["attendees"] = [{"email": email} for email in event.attendees]
    return payload


class GoogleCalendarClient:
    """Calendar provider backed by the Google Calendar REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str | None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        if not access_token:
            raise CalendarProviderError("Calendar access token is not configured")

        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise CalendarProviderError(f"Calendar request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CalendarProviderError(
                f"Calendar API {method} {path} returned {response.status_code}: {response.text}",
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        params: dict[str, Any] = {
            "timeMin": ensure_utc(time_min).isoformat(),
            "timeMax": ensure_utc(time_max).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250,
        }
        while True:
            data = await self._request(
                "GET",
                f"/calendars/{calendar_id}/events",
                access_token,
                params=params,
            ) or {}
            for item in data.get("items", []):
                event = event_from_payload(item)
                if event is not None:
                    events.append(event)
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token
        logger.debug("Fetched %s events from calendar %s", len(events), calendar_id)
        return events

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        data = await self._request(
            "POST",
            f"/calendars/{calendar_id}/events",
            self.access_token,
            json=event_to_payload(event),
        )
        created = event_from_payload(data or {})
        if created is None:
            raise CalendarProviderError("Calendar API returned an unusable event")
        return created

    async def update_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        if not event.id:
            raise CalendarProviderError("Event id is required for update")
        data = await self._request(
            "PUT",
            f"/calendars/{calendar_id}/events/{event.id}",
            self.access_token,
            json=event_to_payload(event),
        )
        updated = event_from_payload(data or {})
        if updated is None:
            raise CalendarProviderError("Calendar API returned an unusable event")
        return updated

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._request(
            "DELETE",
            f"/calendars/{calendar_id}/events/{event_id}",
            self.access_token,
            params={"sendUpdates": "all"},
        )


def build_calendar_provider(settings: Settings) -> GoogleCalendarClient:
    """Construct the calendar client from explicit settings."""
    return GoogleCalendarClient(
        base_url=settings.calendar_api_base_url,
        access_token=settings.calendar_access_token,
        timeout_seconds=settings.external_call_timeout_seconds,
    )


def get_calendar_provider() -> CalendarProvider:
    """FastAPI dependency for the calendar provider."""
    return build_calendar_provider(get_settings())
