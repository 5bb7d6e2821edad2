"""Notifications business logic layer."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import UUID

from fastapi import Depends
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.database import get_db_session
from calico.core.enums import NotificationKindEnum, RoleEnum
from calico.core.metrics import EXTERNAL_CALL_FAILURES_TOTAL
from calico.modules.identity.models import User
from calico.modules.notifications.models import Notification
from calico.modules.notifications.repository import NotificationsRepository
from calico.shared.exceptions import NotFoundException, UnauthorizedException
from calico.shared.utils import utc_now

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Fire-and-forget delivery of session events."""

    async def notify(self, kind: NotificationKindEnum, payload: dict[str, Any]) -> None:
        """Deliver ``kind`` to ``payload["recipient_ids"]``; never raises."""


_TEMPLATES: dict[NotificationKindEnum, tuple[str, str]] = {
    NotificationKindEnum.SESSION_REQUESTED: (
        "New session request",
        "{student_name} requested a {course} session on {start}.",
    ),
    NotificationKindEnum.SESSION_SCHEDULED: (
        "Session scheduled",
        "Your {course} session on {start} is confirmed.",
    ),
    NotificationKindEnum.SESSION_ACCEPTED: (
        "Session accepted",
        "{tutor_name} accepted your {course} session on {start}.",
    ),
    NotificationKindEnum.SESSION_DECLINED: (
        "Session declined",
        "{tutor_name} declined your {course} session on {start}. Reason: {reason}",
    ),
    NotificationKindEnum.SESSION_CANCELLED: (
        "Session cancelled",
        "The {course} session on {start} was cancelled. Reason: {reason}",
    ),
    NotificationKindEnum.SESSION_RESCHEDULED: (
        "Session rescheduled",
        "The {course} session moved from {previous_start} to {start}.",
    ),
    NotificationKindEnum.SESSION_COMPLETED: (
        "Session completed",
        "The {course} session on {start} was marked as completed.",
    ),
}


def build_message(kind: NotificationKindEnum, payload: dict[str, Any]) -> tuple[str, str]:
    """Render title and body for a session event."""
    title, template = _TEMPLATES[kind]
    context = {
        "student_name": payload.get("student_name") or "A student",
        "tutor_name": payload.get("tutor_name") or "Your tutor",
        "course": payload.get("course") or "tutoring",
        "start": payload.get("start_at") or "an unknown time",
        "previous_start": payload.get("previous_start_at") or "an unknown time",
        "reason": payload.get("reason") or "not given",
    }
    return title, template.format(**context)


class NotificationsService:
    """Stores in-app notifications; also the notification sink of session transitions."""

    def __init__(self, repository: NotificationsRepository) -> None:
        self.repository = repository

    async def notify(self, kind: NotificationKindEnum, payload: dict[str, Any]) -> None:
        recipient_ids = payload.get("recipient_ids") or []
        if not recipient_ids:
            return

        stored_payload = jsonable_encoder({key: value for key, value in payload.items() if key != "recipient_ids"})
        title, body = build_message(kind, stored_payload)
        try:
            async with self.repository.savepoint():
                for recipient_id in recipient_ids:
                    await self.repository.create_notification(
                        user_id=recipient_id,
                        kind=kind,
                        title=title,
                        body=body,
                        payload=stored_payload,
                    )
        except Exception:
            EXTERNAL_CALL_FAILURES_TOTAL.labels(dependency="notifications").inc()
            logger.exception("Failed to store %s notification", kind)

    async def list_my_notifications(
        self,
        actor: User,
        limit: int,
        offset: int,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        """List notifications for current user."""
        return await self.repository.list_notifications_for_user(actor.id, limit, offset, unread_only)

    async def mark_read(self, notification_id: UUID, actor: User) -> Notification:
        notification = await self.repository.get_notification_by_id(notification_id)
        if notification is None:
            raise NotFoundException("Notification not found")
        if actor.role.name != RoleEnum.ADMIN and notification.user_id != actor.id:
            raise UnauthorizedException("Only the recipient can update a notification")
        if notification.is_read:
            return notification
        return await self.repository.mark_read(notification, utc_now())


async def get_notifications_service(session: AsyncSession = Depends(get_db_session)) -> NotificationsService:
    """Dependency provider for notifications service."""
    return NotificationsService(NotificationsRepository(session))
