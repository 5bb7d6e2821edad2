"""Booking ledger: the authoritative record of which slots are taken."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.database import get_db_session
from calico.core.enums import ApprovalStatusEnum, SessionStatusEnum
from calico.core.metrics import SLOT_CLAIMS_TOTAL
from calico.modules.booking.models import SlotBooking
from calico.modules.booking.repository import BookingRepository
from calico.modules.scheduling.slots import Slot
from calico.modules.sessions.models import TutoringSession
from calico.modules.sessions.repository import SessionsRepository
from calico.shared.exceptions import SlotAlreadyBookedException
from calico.shared.utils import utc_now

logger = logging.getLogger(__name__)


class BookingParty(Protocol):
    id: UUID
    email: str


@dataclass(slots=True)
class ClaimResult:
    booking: SlotBooking
    session: TutoringSession


class BookingLedger:
    """Claims and releases slots; at most one booking per (availability, slot index)."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        sessions_repository: SessionsRepository,
    ) -> None:
        self.booking_repository = booking_repository
        self.sessions_repository = sessions_repository

    async def is_slot_booked(self, parent_availability_id: str, slot_index: int) -> bool:
        booking = await self.booking_repository.find_by_parent_and_index(parent_availability_id, slot_index)
        return booking is not None

    async def annotate_slots(self, slots: list[Slot]) -> list[Slot]:
        """Re-derive booking status of freshly generated slots from the ledger."""
        if not slots:
            return []
        bookings = await self.booking_repository.list_for_availabilities(
            slot.parent_availability_id for slot in slots
        )
        by_key = {(booking.parent_availability_id, booking.slot_index): booking for booking in bookings}

        annotated: list[Slot] = []
        for slot in slots:
            booking = by_key.get((slot.parent_availability_id, slot.slot_index))
            if booking is None:
                annotated.append(slot.as_available())
            else:
                annotated.append(slot.as_booked(booking.student_id, booking.session_id))
        return annotated

    async def _ensure_unbooked(self, slot: Slot) -> None:
        # cheap check on the possibly stale view first, then the ledger itself
        if slot.is_booked:
            SLOT_CLAIMS_TOTAL.labels(outcome="conflict").inc()
            raise SlotAlreadyBookedException(slot_id=slot.id)

        existing = await self.booking_repository.find_by_parent_and_index(
            slot.parent_availability_id,
            slot.slot_index,
        )
        if existing is not None:
            SLOT_CLAIMS_TOTAL.labels(outcome="conflict").inc()
            raise SlotAlreadyBookedException("This slot was already booked by another student", slot_id=slot.id)

    async def claim_slot(
        self,
        slot: Slot,
        student: BookingParty,
        *,
        tutor_email: str | None = None,
        notes: str | None = None,
        course: str | None = None,
        requires_approval: bool = True,
        price: int = 0,
    ) -> ClaimResult:
        """Book a slot and open its session in one atomic unit."""
        await self._ensure_unbooked(slot)

        now = utc_now()
        status = SessionStatusEnum.PENDING if requires_approval else SessionStatusEnum.SCHEDULED
        approval_status = ApprovalStatusEnum.PENDING if requires_approval else ApprovalStatusEnum.NOT_REQUIRED
        session_course = course or slot.course

        try:
            async with self.booking_repository.savepoint():
                tutoring_session = await self.sessions_repository.create_session(
                    tutor_id=slot.tutor_id,
                    student_id=student.id,
                    course=session_course,
                    scheduled_start_at=slot.start_at,
                    scheduled_end_at=slot.end_at,
                    location=slot.location,
                    notes=notes,
                    price=price,
                    status=status,
                    approval_status=approval_status,
                    parent_availability_id=slot.parent_availability_id,
                    slot_index=slot.slot_index,
                    slot_id=slot.id,
                    accepted_at=None if requires_approval else now,
                )
                booking = await self.booking_repository.create_booking(
                    parent_availability_id=slot.parent_availability_id,
                    slot_index=slot.slot_index,
                    slot_id=slot.id,
                    tutor_id=slot.tutor_id,
                    tutor_email=tutor_email,
                    student_id=student.id,
                    student_email=student.email,
                    session_id=tutoring_session.id,
                    slot_start_at=slot.start_at,
                    slot_end_at=slot.end_at,
                    course=session_course,
                    booked_at=now,
                )
        except SlotAlreadyBookedException:
            SLOT_CLAIMS_TOTAL.labels(outcome="conflict").inc()
            logger.info("Lost claim race for slot %s", slot.id)
            raise

        SLOT_CLAIMS_TOTAL.labels(outcome="booked").inc()
        logger.info("Slot %s booked by %s as session %s", slot.id, student.id, tutoring_session.id)
        return ClaimResult(booking=booking, session=tutoring_session)

    async def release_slot(self, parent_availability_id: str, slot_index: int, session_id: UUID) -> int:
        """Drop the booking held by ``session_id``; a newer booking of the same slot is left alone."""
        released = await self.booking_repository.delete_by_parent_and_index(
            parent_availability_id,
            slot_index,
            session_id=session_id,
        )
        if released:
            logger.info("Released slot %s/%s from session %s", parent_availability_id, slot_index, session_id)
        return released

    async def release_session(self, session_id: UUID) -> int:
        """Drop the booking held by the session, whichever slot it currently points at."""
        released = await self.booking_repository.delete_by_session(session_id)
        if released:
            logger.info("Released booking of session %s", session_id)
        return released

    async def move_booking(
        self,
        tutoring_session: TutoringSession,
        new_slot: Slot,
        *,
        student_email: str | None,
        tutor_email: str | None,
    ) -> SlotBooking:
        """Swap the session's booking to ``new_slot``; the old booking survives if the new claim loses."""
        await self._ensure_unbooked(new_slot)

        async with self.booking_repository.savepoint():
            await self.release_session(tutoring_session.id)
            booking = await self.booking_repository.create_booking(
                parent_availability_id=new_slot.parent_availability_id,
                slot_index=new_slot.slot_index,
                slot_id=new_slot.id,
                tutor_id=new_slot.tutor_id,
                tutor_email=tutor_email,
                student_id=tutoring_session.student_id,
                student_email=student_email,
                session_id=tutoring_session.id,
                slot_start_at=new_slot.start_at,
                slot_end_at=new_slot.end_at,
                course=tutoring_session.course,
                booked_at=utc_now(),
            )
        SLOT_CLAIMS_TOTAL.labels(outcome="moved").inc()
        return booking

    async def list_bookings_for_availability(self, parent_availability_id: str) -> list[SlotBooking]:
        bookings = await self.booking_repository.list_for_availabilities([parent_availability_id])
        return sorted(bookings, key=lambda booking: booking.slot_index)


async def get_booking_ledger(session: AsyncSession = Depends(get_db_session)) -> BookingLedger:
    """Dependency provider for the booking ledger."""
    return BookingLedger(
        booking_repository=BookingRepository(session),
        sessions_repository=SessionsRepository(session),
    )
