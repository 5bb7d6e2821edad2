"""Scheduling repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from calico.modules.scheduling.models import AvailabilityWindow


class SchedulingRepository:
    """DB access for availability windows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_window(self, window_id: str) -> AvailabilityWindow | None:
        stmt = select(AvailabilityWindow).where(AvailabilityWindow.id == window_id)
        return await self.session.scalar(stmt)

    async def list_windows_for_tutor(
        self,
        tutor_id: UUID,
        start_at: datetime,
        end_at: datetime,
    ) -> list[AvailabilityWindow]:
        stmt = (
            select(AvailabilityWindow)
            .where(
                AvailabilityWindow.tutor_id == tutor_id,
                AvailabilityWindow.start_at < end_at,
                AvailabilityWindow.end_at > start_at,
            )
            .order_by(AvailabilityWindow.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_windows_for_course(
        self,
        course: str,
        start_at: datetime,
        end_at: datetime,
    ) -> list[AvailabilityWindow]:
        stmt = (
            select(AvailabilityWindow)
            .where(
                AvailabilityWindow.course == course,
                AvailabilityWindow.start_at < end_at,
                AvailabilityWindow.end_at > start_at,
            )
            .order_by(AvailabilityWindow.start_at.asc(), AvailabilityWindow.tutor_id.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def upsert_window(self, window_id: str, **fields: Any) -> tuple[AvailabilityWindow, bool]:
        """Create or overwrite a window; returns (window, created)."""
        window = await self.get_window(window_id)
        created = window is None
        if window is None:
            window = AvailabilityWindow(id=window_id, **fields)
            self.session.add(window)
        else:
            for key, value in fields.items():
                setattr(window, key, value)
        await self.session.flush()
        return window, created

    async def delete_window(self, window: AvailabilityWindow) -> None:
        await self.session.delete(window)
        await self.session.flush()

    async def delete_windows_not_in(
        self,
        tutor_id: UUID,
        keep_ids: Iterable[str],
        start_at: datetime,
        end_at: datetime,
    ) -> int:
        """Delete the tutor's windows in range whose ids were not seen during sync."""
        stmt = delete(AvailabilityWindow).where(
            AvailabilityWindow.tutor_id == tutor_id,
            AvailabilityWindow.start_at < end_at,
            AvailabilityWindow.end_at > start_at,
            AvailabilityWindow.id.not_in(list(keep_ids)),
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return int(result.rowcount or 0)
