from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from calico.core.enums import NotificationKindEnum, RoleEnum
from calico.modules.notifications.service import NotificationsService, build_message
from calico.shared.exceptions import NotFoundException, UnauthorizedException
from tests.fakes import make_actor


class FakeNotificationsRepository:
    def __init__(self, fail_on_create: bool = False) -> None:
        self.items: list[SimpleNamespace] = []
        self.fail_on_create = fail_on_create

    @asynccontextmanager
    async def savepoint(self):
        snapshot = list(self.items)
        try:
            yield
        except BaseException:
            self.items = snapshot
            raise

    async def create_notification(self, user_id: UUID, kind, title: str, body: str, payload: dict) -> SimpleNamespace:
        if self.fail_on_create and self.items:
            raise RuntimeError("database unavailable")
        item = SimpleNamespace(
            id=uuid4(),
            user_id=user_id,
            kind=kind,
            title=title,
            body=body,
            payload=payload,
            is_read=False,
            read_at=None,
        )
        self.items.append(item)
        return item

    async def get_notification_by_id(self, notification_id: UUID) -> SimpleNamespace | None:
        return next((item for item in self.items if item.id == notification_id), None)

    async def list_notifications_for_user(self, user_id: UUID, limit: int, offset: int, unread_only: bool = False):
        items = [item for item in self.items if item.user_id == user_id and not (unread_only and item.is_read)]
        return items[offset : offset + limit], len(items)

    async def mark_read(self, notification: SimpleNamespace, read_at: datetime) -> SimpleNamespace:
        notification.is_read = True
        notification.read_at = read_at
        return notification


def session_payload(*recipients: UUID, **extra) -> dict:
    return {
        "recipient_ids": list(recipients),
        "session_id": uuid4(),
        "student_name": "Carla",
        "tutor_name": "Ana",
        "course": "ISIS3710",
        "start_at": "2026-03-02T09:00:00+00:00",
        **extra,
    }


def test_build_message_fills_defaults() -> None:
    title, body = build_message(NotificationKindEnum.SESSION_DECLINED, {"course": "ISIS3710"})

    assert title == "Session declined"
    assert body == "Your tutor declined your ISIS3710 session on an unknown time. Reason: not given"


def test_build_message_for_reschedule_mentions_both_times() -> None:
    _, body = build_message(
        NotificationKindEnum.SESSION_RESCHEDULED,
        {"course": "ISIS3710", "start_at": "B", "previous_start_at": "A"},
    )

    assert body == "The ISIS3710 session moved from A to B."


@pytest.mark.asyncio
async def test_notify_stores_one_row_per_recipient() -> None:
    repository = FakeNotificationsRepository()
    service = NotificationsService(repository)
    tutor_id, student_id = uuid4(), uuid4()

    await service.notify(NotificationKindEnum.SESSION_SCHEDULED, session_payload(tutor_id, student_id))

    assert [item.user_id for item in repository.items] == [tutor_id, student_id]
    stored = repository.items[0]
    assert stored.kind == NotificationKindEnum.SESSION_SCHEDULED
    assert "recipient_ids" not in stored.payload
    assert isinstance(stored.payload["session_id"], str)
    assert stored.body == "Your ISIS3710 session on 2026-03-02T09:00:00+00:00 is confirmed."


@pytest.mark.asyncio
async def test_notify_without_recipients_is_noop() -> None:
    repository = FakeNotificationsRepository()

    await NotificationsService(repository).notify(NotificationKindEnum.SESSION_COMPLETED, session_payload())

    assert repository.items == []


@pytest.mark.asyncio
async def test_notify_failure_is_swallowed_and_rolled_back() -> None:
    repository = FakeNotificationsRepository(fail_on_create=True)

    await NotificationsService(repository).notify(
        NotificationKindEnum.SESSION_CANCELLED,
        session_payload(uuid4(), uuid4()),
    )

    assert repository.items == []


@pytest.mark.asyncio
async def test_mark_read_is_limited_to_recipient() -> None:
    repository = FakeNotificationsRepository()
    service = NotificationsService(repository)
    recipient = make_actor(role=RoleEnum.STUDENT)
    await service.notify(NotificationKindEnum.SESSION_ACCEPTED, session_payload(recipient.id))
    notification_id = repository.items[0].id

    with pytest.raises(UnauthorizedException):
        await service.mark_read(notification_id, make_actor(role=RoleEnum.STUDENT))
    with pytest.raises(NotFoundException):
        await service.mark_read(uuid4(), recipient)

    marked = await service.mark_read(notification_id, recipient)
    first_read_at = marked.read_at
    again = await service.mark_read(notification_id, recipient)

    assert marked.is_read
    assert again.read_at == first_read_at
    unread, total = await service.list_my_notifications(recipient, limit=10, offset=0, unread_only=True)
    assert (unread, total) == ([], 0)
