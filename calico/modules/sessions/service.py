"""Tutoring session lifecycle.

State machine::

    pending --accept--> scheduled --complete--> completed
    pending --decline--> declined
    pending|scheduled --cancel--> cancelled
    pending|scheduled --reschedule--> (same status, new slot)

Booking-ledger changes happen in the same DB transaction as the status change.
Calendar and notification side effects are best effort: a failure is logged
and reported in ``SessionTransitionResult.warnings`` without undoing the
transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.config import get_settings
from calico.core.database import get_db_session
from calico.core.enums import ApprovalStatusEnum, NotificationKindEnum, RoleEnum, SessionStatusEnum
from calico.core.metrics import EXTERNAL_CALL_FAILURES_TOTAL, SESSION_TRANSITIONS_TOTAL
from calico.integrations.calendar import CalendarEvent, CalendarProvider, CalendarProviderError, get_calendar_provider
from calico.modules.booking.service import BookingLedger
from calico.modules.identity.models import User
from calico.modules.identity.repository import IdentityRepository
from calico.modules.notifications.repository import NotificationsRepository
from calico.modules.notifications.service import NotificationSink, NotificationsService
from calico.modules.scheduling.courses import parse_course
from calico.modules.scheduling.service import SchedulingService, build_scheduling_service
from calico.modules.scheduling.slots import Slot, validate_slot_for_booking
from calico.modules.sessions.models import TutoringSession
from calico.modules.sessions.repository import SessionsRepository
from calico.modules.sessions.schemas import BookSlotRequest
from calico.shared.exceptions import (
    BusinessRuleException,
    InvalidStateTransitionException,
    NotFoundException,
    SlotAlreadyBookedException,
    SlotUnavailableException,
    TooLateToCancelException,
    UnauthorizedException,
)
from calico.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SessionStatusEnum.PENDING, SessionStatusEnum.SCHEDULED)


@dataclass(slots=True)
class SessionTransitionResult:
    session: TutoringSession
    warnings: list[str] = field(default_factory=list)


class SessionLifecycleService:
    """Creates sessions from slot claims and drives their state transitions."""

    def __init__(
        self,
        sessions_repository: SessionsRepository,
        identity_repository: IdentityRepository,
        booking_ledger: BookingLedger,
        scheduling_service: SchedulingService,
        notifier: NotificationSink,
        calendar_provider: CalendarProvider | None = None,
        requires_approval: bool = True,
        cancel_lead: timedelta = timedelta(hours=2),
        min_advance: timedelta = timedelta(minutes=60),
        session_price: int = 0,
        calendar_id: str = "primary",
    ) -> None:
        self.sessions_repository = sessions_repository
        self.identity_repository = identity_repository
        self.booking_ledger = booking_ledger
        self.scheduling_service = scheduling_service
        self.notifier = notifier
        self.calendar_provider = calendar_provider
        self.requires_approval = requires_approval
        self.cancel_lead = cancel_lead
        self.min_advance = min_advance
        self.session_price = session_price
        self.calendar_id = calendar_id

    async def _get_session(self, session_id: UUID, *, for_update: bool = False) -> TutoringSession:
        if for_update:
            tutoring_session = await self.sessions_repository.get_session_for_update(session_id)
        else:
            tutoring_session = await self.sessions_repository.get_session_by_id(session_id)
        if tutoring_session is None:
            raise NotFoundException("Session not found")
        return tutoring_session

    @staticmethod
    def _require_tutor(tutoring_session: TutoringSession, actor: User) -> None:
        if actor.role.name == RoleEnum.ADMIN or actor.id == tutoring_session.tutor_id:
            return
        raise UnauthorizedException("Only the session tutor can do this")

    @staticmethod
    def _require_participant(tutoring_session: TutoringSession, actor: User) -> None:
        if actor.role.name == RoleEnum.ADMIN:
            return
        if actor.id in (tutoring_session.tutor_id, tutoring_session.student_id):
            return
        raise UnauthorizedException("You cannot manage this session")

    def _validate_slot(self, slot: Slot) -> None:
        if slot.is_booked:
            raise SlotAlreadyBookedException(slot_id=slot.id)
        errors = validate_slot_for_booking(slot, utc_now(), self.min_advance)
        if errors:
            raise SlotUnavailableException("; ".join(errors), slot_id=slot.id, reasons=errors)

    async def _participants(self, tutoring_session: TutoringSession) -> tuple[User | None, User | None]:
        users = await self.identity_repository.list_users_by_ids(
            [tutoring_session.tutor_id, tutoring_session.student_id],
        )
        return users.get(tutoring_session.tutor_id), users.get(tutoring_session.student_id)

    async def _notify(
        self,
        kind: NotificationKindEnum,
        tutoring_session: TutoringSession,
        recipient_ids: list[UUID],
        **extra: Any,
    ) -> None:
        tutor, student = await self._participants(tutoring_session)
        payload: dict[str, Any] = {
            "recipient_ids": recipient_ids,
            "session_id": tutoring_session.id,
            "tutor_id": tutoring_session.tutor_id,
            "student_id": tutoring_session.student_id,
            "tutor_name": tutor.display_name if tutor else None,
            "student_name": student.display_name if student else None,
            "course": tutoring_session.course,
            "start_at": ensure_utc(tutoring_session.scheduled_start_at).isoformat(),
            "end_at": ensure_utc(tutoring_session.scheduled_end_at).isoformat(),
            "slot_id": tutoring_session.slot_id,
        }
        payload.update(extra)
        await self.notifier.notify(kind, payload)

    @staticmethod
    def _other_parties(tutoring_session: TutoringSession, actor: User) -> list[UUID]:
        return [
            user_id
            for user_id in (tutoring_session.tutor_id, tutoring_session.student_id)
            if user_id != actor.id
        ]

    async def _create_calendar_event(self, tutoring_session: TutoringSession, warnings: list[str]) -> None:
        if self.calendar_provider is None:
            return
        tutor, student = await self._participants(tutoring_session)
        event = CalendarEvent(
            id=None,
            title=f"Tutoría {tutoring_session.course}",
            start_at=tutoring_session.scheduled_start_at,
            end_at=tutoring_session.scheduled_end_at,
            location=tutoring_session.location,
            description=tutoring_session.notes,
            attendees=[user.email for user in (tutor, student) if user is not None],
        )
        try:
            created = await self.calendar_provider.create_event(self.calendar_id, event)
        except CalendarProviderError as exc:
            EXTERNAL_CALL_FAILURES_TOTAL.labels(dependency="calendar").inc()
            logger.warning("Calendar event creation failed for session %s: %s", tutoring_session.id, exc)
            warnings.append("Calendar event could not be created")
            return
        await self.sessions_repository.update_session(
            tutoring_session,
            calendar_event_id=created.id,
            calendar_html_link=created.html_link,
        )

    async def _delete_calendar_event(self, tutoring_session: TutoringSession, warnings: list[str]) -> None:
        event_id = tutoring_session.calendar_event_id
        if self.calendar_provider is None or not event_id:
            return
        try:
            await self.calendar_provider.delete_event(self.calendar_id, event_id)
        except CalendarProviderError as exc:
            EXTERNAL_CALL_FAILURES_TOTAL.labels(dependency="calendar").inc()
            logger.warning("Calendar event deletion failed for session %s: %s", tutoring_session.id, exc)
            warnings.append("Calendar event could not be removed")
            return
        await self.sessions_repository.update_session(
            tutoring_session,
            calendar_event_id=None,
            calendar_html_link=None,
        )

    async def book_slot(self, payload: BookSlotRequest, actor: User) -> SessionTransitionResult:
        """Claim a slot for a student and open the tutoring session."""
        role_name = actor.role.name
        if role_name == RoleEnum.STUDENT:
            if payload.student_id is not None and payload.student_id != actor.id:
                raise UnauthorizedException("Students can only book for themselves")
            student = actor
            requires_approval = self.requires_approval
        else:
            if payload.student_id is None:
                raise BusinessRuleException("student_id is required when booking for a student")
            student = await self.identity_repository.get_user_by_id(payload.student_id)
            if student is None:
                raise NotFoundException("Student not found")
            if student.role.name != RoleEnum.STUDENT:
                raise BusinessRuleException("Sessions can only be booked for students")
            requires_approval = False

        slot = await self.scheduling_service.get_slot_by_id(payload.slot_id)
        if role_name == RoleEnum.TUTOR and slot.tutor_id != actor.id:
            raise UnauthorizedException("Tutors can only book their own slots")
        self._validate_slot(slot)

        tutor = await self.identity_repository.get_user_by_id(slot.tutor_id)
        claim = await self.booking_ledger.claim_slot(
            slot,
            student,
            tutor_email=tutor.email if tutor else None,
            notes=payload.notes,
            course=parse_course(payload.course) if payload.course else None,
            requires_approval=requires_approval,
            price=self.session_price,
        )
        result = SessionTransitionResult(session=claim.session)

        if requires_approval:
            await self._notify(NotificationKindEnum.SESSION_REQUESTED, claim.session, [claim.session.tutor_id])
        else:
            await self._create_calendar_event(claim.session, result.warnings)
            await self._notify(
                NotificationKindEnum.SESSION_SCHEDULED,
                claim.session,
                [claim.session.tutor_id, claim.session.student_id],
            )
        SESSION_TRANSITIONS_TOTAL.labels(transition="book").inc()
        return result

    async def accept(self, session_id: UUID, actor: User) -> SessionTransitionResult:
        tutoring_session = await self._get_session(session_id, for_update=True)
        self._require_tutor(tutoring_session, actor)
        if tutoring_session.status != SessionStatusEnum.PENDING:
            raise InvalidStateTransitionException("Only pending sessions can be accepted")

        await self.sessions_repository.update_session(
            tutoring_session,
            status=SessionStatusEnum.SCHEDULED,
            approval_status=ApprovalStatusEnum.APPROVED,
            accepted_at=utc_now(),
        )
        result = SessionTransitionResult(session=tutoring_session)
        await self._create_calendar_event(tutoring_session, result.warnings)
        await self._notify(NotificationKindEnum.SESSION_ACCEPTED, tutoring_session, [tutoring_session.student_id])
        SESSION_TRANSITIONS_TOTAL.labels(transition="accept").inc()
        logger.info("Session %s accepted", tutoring_session.id)
        return result

    async def decline(self, session_id: UUID, actor: User, reason: str | None = None) -> SessionTransitionResult:
        tutoring_session = await self._get_session(session_id, for_update=True)
        self._require_tutor(tutoring_session, actor)
        if tutoring_session.status != SessionStatusEnum.PENDING:
            raise InvalidStateTransitionException("Only pending sessions can be declined")

        await self.sessions_repository.update_session(
            tutoring_session,
            status=SessionStatusEnum.DECLINED,
            approval_status=ApprovalStatusEnum.DECLINED,
            declined_at=utc_now(),
            decline_reason=reason,
        )
        await self.booking_ledger.release_session(tutoring_session.id)
        await self._notify(
            NotificationKindEnum.SESSION_DECLINED,
            tutoring_session,
            [tutoring_session.student_id],
            reason=reason,
        )
        SESSION_TRANSITIONS_TOTAL.labels(transition="decline").inc()
        logger.info("Session %s declined", tutoring_session.id)
        return SessionTransitionResult(session=tutoring_session)

    async def cancel(self, session_id: UUID, actor: User, reason: str | None = None) -> SessionTransitionResult:
        """Cancel an open session; must happen strictly before the lead-time window."""
        tutoring_session = await self._get_session(session_id, for_update=True)
        self._require_participant(tutoring_session, actor)
        if tutoring_session.status not in OPEN_STATUSES:
            raise InvalidStateTransitionException(f"Cannot cancel a {tutoring_session.status} session")

        now = utc_now()
        if ensure_utc(tutoring_session.scheduled_start_at) - now <= self.cancel_lead:
            hours = self.cancel_lead.total_seconds() / 3600
            raise TooLateToCancelException(f"Sessions must be cancelled more than {hours:g} hours in advance")

        await self.sessions_repository.update_session(
            tutoring_session,
            status=SessionStatusEnum.CANCELLED,
            cancelled_at=now,
            cancelled_by_id=actor.id,
            cancellation_reason=reason,
        )
        await self.booking_ledger.release_session(tutoring_session.id)
        result = SessionTransitionResult(session=tutoring_session)
        await self._delete_calendar_event(tutoring_session, result.warnings)
        await self._notify(
            NotificationKindEnum.SESSION_CANCELLED,
            tutoring_session,
            self._other_parties(tutoring_session, actor),
            reason=reason,
            cancelled_by=actor.id,
        )
        SESSION_TRANSITIONS_TOTAL.labels(transition="cancel").inc()
        logger.info("Session %s cancelled by %s", tutoring_session.id, actor.id)
        return result

    async def reschedule(
        self,
        session_id: UUID,
        new_slot_id: str,
        actor: User,
        reason: str | None = None,
    ) -> SessionTransitionResult:
        """Move the session to another slot of the same tutor, keeping its id and status."""
        tutoring_session = await self._get_session(session_id, for_update=True)
        self._require_participant(tutoring_session, actor)
        if tutoring_session.status not in OPEN_STATUSES:
            raise InvalidStateTransitionException(f"Cannot reschedule a {tutoring_session.status} session")

        new_slot = await self.scheduling_service.get_slot_by_id(new_slot_id)
        if new_slot.tutor_id != tutoring_session.tutor_id:
            raise SlotUnavailableException("A session can only be moved to a slot of the same tutor")
        if new_slot.id == tutoring_session.slot_id:
            raise SlotUnavailableException("The session already takes this slot")
        self._validate_slot(new_slot)

        tutor, student = await self._participants(tutoring_session)
        previous_start = ensure_utc(tutoring_session.scheduled_start_at)
        await self.booking_ledger.move_booking(
            tutoring_session,
            new_slot,
            student_email=student.email if student else None,
            tutor_email=tutor.email if tutor else None,
        )
        await self.sessions_repository.update_session(
            tutoring_session,
            scheduled_start_at=new_slot.start_at,
            scheduled_end_at=new_slot.end_at,
            location=new_slot.location,
            parent_availability_id=new_slot.parent_availability_id,
            slot_index=new_slot.slot_index,
            slot_id=new_slot.id,
            rescheduled_at=utc_now(),
            reschedule_reason=reason,
        )

        result = SessionTransitionResult(session=tutoring_session)
        await self._delete_calendar_event(tutoring_session, result.warnings)
        if tutoring_session.status == SessionStatusEnum.SCHEDULED:
            await self._create_calendar_event(tutoring_session, result.warnings)
        await self._notify(
            NotificationKindEnum.SESSION_RESCHEDULED,
            tutoring_session,
            self._other_parties(tutoring_session, actor),
            previous_start_at=previous_start.isoformat(),
            reason=reason,
        )
        SESSION_TRANSITIONS_TOTAL.labels(transition="reschedule").inc()
        logger.info("Session %s moved to slot %s", tutoring_session.id, new_slot.id)
        return result

    async def complete(
        self,
        session_id: UUID,
        actor: User,
        rating: int | None = None,
        comment: str | None = None,
    ) -> SessionTransitionResult:
        """Close a scheduled session once its end time has passed."""
        tutoring_session = await self._get_session(session_id, for_update=True)
        self._require_participant(tutoring_session, actor)
        if tutoring_session.status != SessionStatusEnum.SCHEDULED:
            raise InvalidStateTransitionException("Only scheduled sessions can be completed")
        now = utc_now()
        if ensure_utc(tutoring_session.scheduled_end_at) > now:
            raise InvalidStateTransitionException("Session has not ended yet")
        if rating is not None and actor.id == tutoring_session.tutor_id:
            raise BusinessRuleException("Only the student can rate a session")

        await self.sessions_repository.update_session(
            tutoring_session,
            status=SessionStatusEnum.COMPLETED,
            completed_at=now,
            rating=rating,
            rating_comment=comment,
        )
        await self._notify(
            NotificationKindEnum.SESSION_COMPLETED,
            tutoring_session,
            self._other_parties(tutoring_session, actor),
        )
        SESSION_TRANSITIONS_TOTAL.labels(transition="complete").inc()
        return SessionTransitionResult(session=tutoring_session)

    async def get_session(self, session_id: UUID, actor: User) -> TutoringSession:
        tutoring_session = await self._get_session(session_id)
        self._require_participant(tutoring_session, actor)
        return tutoring_session

    async def list_sessions(
        self,
        actor: User,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TutoringSession], int]:
        """List sessions visible to the actor (own sessions, or all for admin)."""
        return await self.sessions_repository.list_sessions_for_user(
            actor.id,
            actor.role.name,
            status,
            limit,
            offset,
        )

    async def list_pending_for_tutor(self, actor: User) -> list[TutoringSession]:
        if actor.role.name != RoleEnum.TUTOR:
            raise UnauthorizedException("Only tutors have pending requests")
        return await self.sessions_repository.list_pending_for_tutor(actor.id)


async def get_session_lifecycle_service(
    session: AsyncSession = Depends(get_db_session),
    calendar_provider: CalendarProvider = Depends(get_calendar_provider),
) -> SessionLifecycleService:
    """Dependency provider for the session lifecycle service."""
    settings = get_settings()
    scheduling_service = build_scheduling_service(session, settings, calendar_provider)
    return SessionLifecycleService(
        sessions_repository=SessionsRepository(session),
        identity_repository=IdentityRepository(session),
        booking_ledger=scheduling_service.booking_ledger,
        scheduling_service=scheduling_service,
        notifier=NotificationsService(NotificationsRepository(session)),
        calendar_provider=calendar_provider,
        requires_approval=settings.session_requires_approval,
        cancel_lead=timedelta(hours=settings.session_cancel_lead_hours),
        min_advance=timedelta(minutes=settings.booking_min_advance_minutes),
        session_price=settings.default_session_price,
        calendar_id=settings.calendar_id,
    )
