"""Notifications repository layer."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.enums import NotificationKindEnum
from calico.modules.notifications.models import Notification


class NotificationsRepository:
    """DB operations for notifications domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AbstractAsyncContextManager:
        return self.session.begin_nested()

    async def create_notification(
        self,
        user_id: UUID,
        kind: NotificationKindEnum,
        title: str,
        body: str,
        payload: dict[str, Any],
    ) -> Notification:
        notification = Notification(user_id=user_id, kind=kind, title=title, body=body, payload=payload)
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def get_notification_by_id(self, notification_id: UUID) -> Notification | None:
        stmt = select(Notification).where(Notification.id == notification_id)
        return await self.session.scalar(stmt)

    async def list_notifications_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        base_stmt: Select[tuple[Notification]] = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            base_stmt = base_stmt.where(Notification.is_read.is_(False))
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def mark_read(self, notification: Notification, read_at: datetime) -> Notification:
        notification.is_read = True
        notification.read_at = read_at
        await self.session.flush()
        return notification
