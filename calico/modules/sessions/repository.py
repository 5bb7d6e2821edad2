"""Tutoring session repository layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.enums import ApprovalStatusEnum, RoleEnum, SessionStatusEnum
from calico.modules.sessions.models import TutoringSession


class SessionsRepository:
    """DB operations for tutoring sessions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_session(
        self,
        *,
        tutor_id: UUID,
        student_id: UUID,
        course: str,
        scheduled_start_at: datetime,
        scheduled_end_at: datetime,
        location: str | None,
        notes: str | None,
        price: int,
        status: SessionStatusEnum,
        approval_status: ApprovalStatusEnum,
        parent_availability_id: str,
        slot_index: int,
        slot_id: str,
        accepted_at: datetime | None = None,
    ) -> TutoringSession:
        tutoring_session = TutoringSession(
            tutor_id=tutor_id,
            student_id=student_id,
            course=course,
            scheduled_start_at=scheduled_start_at,
            scheduled_end_at=scheduled_end_at,
            location=location,
            notes=notes,
            price=price,
            status=status,
            approval_status=approval_status,
            parent_availability_id=parent_availability_id,
            slot_index=slot_index,
            slot_id=slot_id,
            accepted_at=accepted_at,
        )
        self.session.add(tutoring_session)
        await self.session.flush()
        return tutoring_session

    async def get_session_by_id(self, session_id: UUID) -> TutoringSession | None:
        stmt = select(TutoringSession).where(TutoringSession.id == session_id)
        return await self.session.scalar(stmt)

    async def get_session_for_update(self, session_id: UUID) -> TutoringSession | None:
        """Row-locking read; a second transition on the same session waits for this transaction."""
        stmt = (
            select(TutoringSession)
            .where(TutoringSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def list_sessions_for_user(
        self,
        user_id: UUID,
        role_name: RoleEnum,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TutoringSession], int]:
        base_stmt: Select[tuple[TutoringSession]] = select(TutoringSession)
        if role_name == RoleEnum.STUDENT:
            base_stmt = base_stmt.where(TutoringSession.student_id == user_id)
        elif role_name == RoleEnum.TUTOR:
            base_stmt = base_stmt.where(TutoringSession.tutor_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(TutoringSession.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(TutoringSession.scheduled_start_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def list_pending_for_tutor(self, tutor_id: UUID) -> list[TutoringSession]:
        stmt = (
            select(TutoringSession)
            .where(
                TutoringSession.tutor_id == tutor_id,
                TutoringSession.status == SessionStatusEnum.PENDING,
            )
            .order_by(TutoringSession.scheduled_start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def update_session(self, tutoring_session: TutoringSession, **changes: Any) -> TutoringSession:
        for key, value in changes.items():
            setattr(tutoring_session, key, value)
        await self.session.flush()
        return tutoring_session
