"""Booking ledger repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.database import is_unique_violation
from calico.modules.booking.models import SESSION_UNIQUE_CONSTRAINT, SLOT_UNIQUE_CONSTRAINT, SlotBooking
from calico.shared.exceptions import InvalidStateTransitionException, SlotAlreadyBookedException


class BookingRepository:
    """DB operations for the booking ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AbstractAsyncContextManager:
        """Nested transaction; everything inside is rolled back if it raises."""
        return self.session.begin_nested()

    async def find_by_parent_and_index(self, parent_availability_id: str, slot_index: int) -> SlotBooking | None:
        stmt = select(SlotBooking).where(
            SlotBooking.parent_availability_id == parent_availability_id,
            SlotBooking.slot_index == slot_index,
        )
        return await self.session.scalar(stmt)

    async def list_for_availabilities(self, parent_availability_ids: Iterable[str]) -> list[SlotBooking]:
        ids = list(set(parent_availability_ids))
        if not ids:
            return []
        stmt = select(SlotBooking).where(SlotBooking.parent_availability_id.in_(ids))
        return list((await self.session.scalars(stmt)).all())

    async def create_booking(
        self,
        *,
        parent_availability_id: str,
        slot_index: int,
        slot_id: str,
        tutor_id: UUID,
        tutor_email: str | None,
        student_id: UUID,
        student_email: str | None,
        session_id: UUID,
        slot_start_at: datetime,
        slot_end_at: datetime,
        course: str,
        booked_at: datetime,
    ) -> SlotBooking:
        """Insert a booking; a duplicate (availability, index) key is a lost race."""
        booking = SlotBooking(
            parent_availability_id=parent_availability_id,
            slot_index=slot_index,
            slot_id=slot_id,
            tutor_id=tutor_id,
            tutor_email=tutor_email,
            student_id=student_id,
            student_email=student_email,
            session_id=session_id,
            slot_start_at=slot_start_at,
            slot_end_at=slot_end_at,
            course=course,
            booked_at=booked_at,
        )
        self.session.add(booking)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc, SLOT_UNIQUE_CONSTRAINT):
                raise SlotAlreadyBookedException(slot_id=slot_id) from exc
            if is_unique_violation(exc, SESSION_UNIQUE_CONSTRAINT):
                raise InvalidStateTransitionException("Session already holds a booking", session_id=str(session_id)) from exc
            raise
        return booking

    async def delete_by_parent_and_index(
        self,
        parent_availability_id: str,
        slot_index: int,
        session_id: UUID | None = None,
    ) -> int:
        stmt = delete(SlotBooking).where(
            SlotBooking.parent_availability_id == parent_availability_id,
            SlotBooking.slot_index == slot_index,
        )
        if session_id is not None:
            stmt = stmt.where(SlotBooking.session_id == session_id)
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def delete_by_session(self, session_id: UUID) -> int:
        stmt = delete(SlotBooking).where(SlotBooking.session_id == session_id)
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
