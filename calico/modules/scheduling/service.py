"""Scheduling business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.config import Settings, get_settings
from calico.core.database import get_db_session
from calico.core.enums import RoleEnum
from calico.core.metrics import EXTERNAL_CALL_FAILURES_TOTAL
from calico.integrations.calendar import CalendarProvider, CalendarProviderError, get_calendar_provider
from calico.modules.booking.repository import BookingRepository
from calico.modules.booking.service import BookingLedger
from calico.modules.identity.models import User
from calico.modules.scheduling.courses import DEFAULT_COURSE_LABEL, extract_course_from_title, parse_course
from calico.modules.scheduling.models import AvailabilityWindow
from calico.modules.scheduling.repository import SchedulingRepository
from calico.modules.scheduling.schemas import WindowCreate
from calico.modules.scheduling.slots import (
    DEFAULT_SLOT_DURATION,
    Slot,
    filter_available_slots,
    find_consecutive_available_slots,
    generate_slots,
    generate_slots_from_availabilities,
    parse_slot_id,
    validate_slot_for_booking,
)
from calico.modules.sessions.repository import SessionsRepository
from calico.shared.exceptions import (
    ConflictException,
    ExternalServiceException,
    NotFoundException,
    UnauthorizedException,
)
from calico.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncSummary:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0


class SchedulingService:
    """Availability windows and the slots derived from them."""

    def __init__(
        self,
        repository: SchedulingRepository,
        booking_ledger: BookingLedger,
        calendar_provider: CalendarProvider | None = None,
        slot_duration: timedelta = DEFAULT_SLOT_DURATION,
        default_course: str = DEFAULT_COURSE_LABEL,
        min_advance: timedelta = timedelta(minutes=60),
        default_calendar_id: str = "primary",
        sync_days_ahead: int = 90,
    ) -> None:
        self.repository = repository
        self.booking_ledger = booking_ledger
        self.calendar_provider = calendar_provider
        self.slot_duration = slot_duration
        self.default_course = default_course
        self.min_advance = min_advance
        self.default_calendar_id = default_calendar_id
        self.sync_days_ahead = sync_days_ahead

    @staticmethod
    def resolve_tutor_id(actor: User, requested_tutor_id: UUID | None) -> UUID:
        role_name = actor.role.name
        if role_name == RoleEnum.ADMIN:
            if requested_tutor_id is None:
                raise UnauthorizedException("Admin must specify tutor_id")
            return requested_tutor_id
        if role_name != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors manage availability")
        if requested_tutor_id is not None and requested_tutor_id != actor.id:
            raise UnauthorizedException("Tutors can only manage their own availability")
        return actor.id

    async def create_window(self, payload: WindowCreate, actor: User) -> AvailabilityWindow:
        """Create a window by hand (calendar sync is the usual source)."""
        tutor_id = self.resolve_tutor_id(actor, payload.tutor_id)
        window_id = payload.id or f"manual-{uuid4().hex}"
        if await self.repository.get_window(window_id) is not None:
            raise ConflictException("Availability window already exists")

        course = parse_course(payload.course) if payload.course else extract_course_from_title(payload.title)
        window, _ = await self.repository.upsert_window(
            window_id,
            tutor_id=tutor_id,
            title=payload.title,
            course=course,
            location=payload.location,
            description=payload.description,
            start_at=ensure_utc(payload.start_at),
            end_at=ensure_utc(payload.end_at),
        )
        logger.info("Created availability window %s for tutor %s", window.id, tutor_id)
        return window

    async def delete_window(self, window_id: str, actor: User) -> None:
        """Delete a window; existing bookings of its slots stay in the ledger."""
        window = await self.repository.get_window(window_id)
        if window is None:
            raise NotFoundException("Availability window not found")
        if actor.role.name != RoleEnum.ADMIN and window.tutor_id != actor.id:
            raise UnauthorizedException("Tutors can only manage their own availability")
        await self.repository.delete_window(window)
        logger.info("Deleted availability window %s", window_id)

    async def list_windows(self, tutor_id: UUID, start_at: datetime, end_at: datetime) -> list[AvailabilityWindow]:
        return await self.repository.list_windows_for_tutor(tutor_id, ensure_utc(start_at), ensure_utc(end_at))

    async def sync_tutor_availability(
        self,
        tutor_id: UUID,
        access_token: str,
        calendar_id: str | None = None,
        days_ahead: int | None = None,
    ) -> SyncSummary:
        """Mirror the tutor's calendar events into availability windows.

        Each event maps to exactly one window keyed by the event id. Windows in
        the sync range whose event is gone are deleted.
        """
        if self.calendar_provider is None:
            raise ExternalServiceException("Calendar provider is not configured")

        calendar_id = calendar_id or self.default_calendar_id
        time_min = utc_now()
        time_max = time_min + timedelta(days=days_ahead or self.sync_days_ahead)

        try:
            events = await self.calendar_provider.list_events(access_token, calendar_id, time_min, time_max)
        except CalendarProviderError as exc:
            EXTERNAL_CALL_FAILURES_TOTAL.labels(dependency="calendar").inc()
            logger.warning("Calendar sync failed for tutor %s: %s", tutor_id, exc)
            raise ExternalServiceException("Could not read availability from the calendar") from exc

        summary = SyncSummary()
        seen_ids: list[str] = []
        for event in events:
            if not event.id or event.end_at <= event.start_at:
                summary.skipped += 1
                continue
            _, created = await self.repository.upsert_window(
                event.id,
                tutor_id=tutor_id,
                title=event.title,
                course=extract_course_from_title(event.title),
                location=event.location,
                description=event.description,
                start_at=event.start_at,
                end_at=event.end_at,
                recurring=event.recurring_event_id is not None,
                recurring_event_id=event.recurring_event_id,
                source_calendar_id=calendar_id,
                html_link=event.html_link,
            )
            seen_ids.append(event.id)
            if created:
                summary.created += 1
            else:
                summary.updated += 1

        summary.deleted = await self.repository.delete_windows_not_in(tutor_id, seen_ids, time_min, time_max)
        logger.info(
            "Synced calendar %s for tutor %s: %s created, %s updated, %s deleted, %s skipped",
            calendar_id,
            tutor_id,
            summary.created,
            summary.updated,
            summary.deleted,
            summary.skipped,
        )
        return summary

    def generate(self, windows: list[AvailabilityWindow]) -> list[Slot]:
        return generate_slots_from_availabilities(windows, self.slot_duration, self.default_course)

    async def get_tutor_slots(
        self,
        tutor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        only_available: bool = False,
    ) -> list[Slot]:
        """Generate the tutor's slots in range with booking state read fresh from the ledger."""
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        windows = await self.repository.list_windows_for_tutor(tutor_id, start_at, end_at)
        slots = [slot for slot in self.generate(windows) if slot.start_at < end_at and slot.end_at > start_at]
        slots = await self.booking_ledger.annotate_slots(slots)
        if only_available:
            return filter_available_slots(slots, utc_now())
        return slots

    async def get_slot(self, parent_availability_id: str, slot_index: int) -> Slot:
        """Regenerate a single slot from its window and annotate it."""
        window = await self.repository.get_window(parent_availability_id)
        if window is None:
            raise NotFoundException("Availability window not found")
        slots = generate_slots(window, self.slot_duration, self.default_course)
        if not 0 <= slot_index < len(slots):
            raise NotFoundException("Slot not found")
        annotated = await self.booking_ledger.annotate_slots([slots[slot_index]])
        return annotated[0]

    async def get_slot_by_id(self, slot_id: str) -> Slot:
        parent_id, slot_index = parse_slot_id(slot_id)
        return await self.get_slot(parent_id, slot_index)

    async def check_slot(self, slot_id: str) -> tuple[Slot, list[str]]:
        """Return the slot with the reasons it cannot be booked right now."""
        slot = await self.get_slot_by_id(slot_id)
        return slot, validate_slot_for_booking(slot, utc_now(), self.min_advance)

    async def get_consecutive_slots(
        self,
        tutor_id: UUID,
        count: int,
        start_at: datetime,
        end_at: datetime,
    ) -> list[list[Slot]]:
        slots = await self.get_tutor_slots(tutor_id, start_at, end_at)
        return find_consecutive_available_slots(slots, count, utc_now())


def build_scheduling_service(
    session: AsyncSession,
    settings: Settings,
    calendar_provider: CalendarProvider | None = None,
) -> SchedulingService:
    """Wire the scheduling service from a DB session and settings."""
    return SchedulingService(
        repository=SchedulingRepository(session),
        booking_ledger=BookingLedger(BookingRepository(session), SessionsRepository(session)),
        calendar_provider=calendar_provider,
        slot_duration=timedelta(minutes=settings.slot_duration_minutes),
        default_course=settings.default_course_label,
        min_advance=timedelta(minutes=settings.booking_min_advance_minutes),
        default_calendar_id=settings.calendar_id,
        sync_days_ahead=settings.availability_sync_days_ahead,
    )


async def get_scheduling_service(
    session: AsyncSession = Depends(get_db_session),
    calendar_provider: CalendarProvider = Depends(get_calendar_provider),
) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return build_scheduling_service(session, get_settings(), calendar_provider)
