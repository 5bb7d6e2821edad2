from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

import calico.modules.booking.service as booking_service_module
import calico.modules.scheduling.service as scheduling_service_module
import calico.modules.sessions.service as sessions_service_module
from calico.core.enums import ApprovalStatusEnum, NotificationKindEnum, RoleEnum, SessionStatusEnum
from calico.modules.sessions.schemas import BookSlotRequest
from calico.modules.sessions.service import SessionLifecycleService
from calico.shared.exceptions import (
    BusinessRuleException,
    InvalidStateTransitionException,
    NotFoundException,
    SlotAlreadyBookedException,
    SlotUnavailableException,
    TooLateToCancelException,
    UnauthorizedException,
)
from tests.fakes import (
    FakeCalendarProvider,
    FakeIdentityRepository,
    FakeNotifier,
    FakeSessionsRepository,
    FakeStore,
    FakeWindow,
    make_actor,
    make_scheduling_service,
)

SESSION_DAY = datetime(2026, 3, 2, tzinfo=UTC)
FIRST_SLOT_START = SESSION_DAY + timedelta(hours=9)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@dataclass
class Env:
    service: SessionLifecycleService
    store: FakeStore
    notifier: FakeNotifier
    calendar: FakeCalendarProvider
    tutor: SimpleNamespace
    other_tutor: SimpleNamespace
    student: SimpleNamespace
    other_student: SimpleNamespace
    admin: SimpleNamespace

    async def book(self, slot_id: str = "evt-a_slot_0", actor: SimpleNamespace | None = None, **fields):
        return await self.service.book_slot(BookSlotRequest(slot_id=slot_id, **fields), actor or self.student)

    async def slot_is_booked(self, slot_id: str) -> bool:
        slot = await self.service.scheduling_service.get_slot_by_id(slot_id)
        return slot.is_booked


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> Clock:
    fixed = Clock(datetime(2026, 3, 1, 8, 0, tzinfo=UTC))
    for module in (sessions_service_module, scheduling_service_module, booking_service_module):
        monkeypatch.setattr(module, "utc_now", fixed)
    return fixed


def make_env(*, calendar_fails: bool = False) -> Env:
    tutor = make_actor(role=RoleEnum.TUTOR, display_name="Ana")
    other_tutor = make_actor(role=RoleEnum.TUTOR, display_name="Beto")
    student = make_actor(role=RoleEnum.STUDENT, display_name="Carla")
    other_student = make_actor(role=RoleEnum.STUDENT, display_name="Diego")
    admin = make_actor(role=RoleEnum.ADMIN)
    windows = [
        FakeWindow(
            id="evt-a",
            tutor_id=tutor.id,
            start_at=FIRST_SLOT_START,
            end_at=SESSION_DAY + timedelta(hours=12),
            title="Tutoría ISIS3710",
            location="ML-512",
        ),
        FakeWindow(
            id="evt-b",
            tutor_id=tutor.id,
            start_at=SESSION_DAY + timedelta(hours=14),
            end_at=SESSION_DAY + timedelta(hours=16),
            title="Tutoría ISIS3710",
            location="ML-340",
        ),
        FakeWindow(
            id="evt-c",
            tutor_id=other_tutor.id,
            start_at=FIRST_SLOT_START,
            end_at=SESSION_DAY + timedelta(hours=11),
            title="Tutoría ISIS3710",
        ),
    ]
    calendar = FakeCalendarProvider(fail=calendar_fails)
    scheduling, _, _, store = make_scheduling_service(windows)
    notifier = FakeNotifier()
    service = SessionLifecycleService(
        sessions_repository=FakeSessionsRepository(store),
        identity_repository=FakeIdentityRepository([tutor, other_tutor, student, other_student, admin]),
        booking_ledger=scheduling.booking_ledger,
        scheduling_service=scheduling,
        notifier=notifier,
        calendar_provider=calendar,
        requires_approval=True,
        cancel_lead=timedelta(hours=2),
        min_advance=timedelta(minutes=60),
        session_price=50000,
    )
    return Env(service, store, notifier, calendar, tutor, other_tutor, student, other_student, admin)


@pytest.mark.asyncio
async def test_student_booking_creates_pending_session_and_notifies_tutor(clock: Clock) -> None:
    env = make_env()

    result = await env.book(notes="repaso parcial")

    session = result.session
    assert session.status == SessionStatusEnum.PENDING
    assert session.approval_status == ApprovalStatusEnum.PENDING
    assert session.student_id == env.student.id
    assert session.tutor_id == env.tutor.id
    assert session.scheduled_start_at == FIRST_SLOT_START
    assert session.price == 50000
    assert session.course == "ISIS3710"
    assert result.warnings == []
    assert await env.slot_is_booked("evt-a_slot_0")
    assert env.calendar.created == []
    kind, payload = env.notifier.calls[0]
    assert kind == NotificationKindEnum.SESSION_REQUESTED
    assert payload["recipient_ids"] == [env.tutor.id]
    assert payload["student_name"] == "Carla"


@pytest.mark.asyncio
async def test_second_booking_of_same_slot_conflicts(clock: Clock) -> None:
    env = make_env()
    await env.book()

    with pytest.raises(SlotAlreadyBookedException):
        await env.book(actor=env.other_student)
    assert len(env.store.bookings) == 1


@pytest.mark.asyncio
async def test_booking_too_close_to_start_is_rejected(clock: Clock) -> None:
    env = make_env()
    clock.now = FIRST_SLOT_START - timedelta(minutes=30)

    with pytest.raises(SlotUnavailableException) as exc:
        await env.book()
    assert env.store.bookings == []
    assert exc.value.to_payload()["error"]["details"] == {
        "slot_id": "evt-a_slot_0",
        "reasons": ["Slots must be booked at least 60 minutes in advance"],
    }


@pytest.mark.asyncio
async def test_student_cannot_book_for_someone_else(clock: Clock) -> None:
    env = make_env()

    with pytest.raises(UnauthorizedException):
        await env.book(student_id=env.other_student.id)


@pytest.mark.asyncio
async def test_tutor_booking_for_student_skips_approval(clock: Clock) -> None:
    env = make_env()

    result = await env.book(actor=env.tutor, student_id=env.student.id)

    assert result.session.status == SessionStatusEnum.SCHEDULED
    assert result.session.approval_status == ApprovalStatusEnum.NOT_REQUIRED
    assert result.session.calendar_event_id == "evt-1"
    kind, payload = env.notifier.calls[0]
    assert kind == NotificationKindEnum.SESSION_SCHEDULED
    assert set(payload["recipient_ids"]) == {env.tutor.id, env.student.id}


@pytest.mark.asyncio
async def test_tutor_cannot_book_another_tutors_slot(clock: Clock) -> None:
    env = make_env()

    with pytest.raises(UnauthorizedException):
        await env.book(slot_id="evt-c_slot_0", actor=env.tutor, student_id=env.student.id)


@pytest.mark.asyncio
async def test_calendar_failure_is_reported_as_warning(clock: Clock) -> None:
    env = make_env(calendar_fails=True)

    result = await env.book(actor=env.admin, student_id=env.student.id)

    assert result.session.status == SessionStatusEnum.SCHEDULED
    assert result.warnings == ["Calendar event could not be created"]
    assert result.session.calendar_event_id is None
    assert len(env.store.bookings) == 1


@pytest.mark.asyncio
async def test_accept_schedules_session_and_creates_calendar_event(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()

    result = await env.service.accept(booked.session.id, env.tutor)

    assert result.session.status == SessionStatusEnum.SCHEDULED
    assert result.session.approval_status == ApprovalStatusEnum.APPROVED
    assert result.session.accepted_at == clock.now
    assert result.session.calendar_event_id == "evt-1"
    assert set(env.calendar.created[0].attendees) == {env.tutor.email, env.student.email}
    assert env.notifier.kinds()[-1] == NotificationKindEnum.SESSION_ACCEPTED


@pytest.mark.asyncio
async def test_accept_twice_is_an_invalid_transition(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.accept(booked.session.id, env.tutor)

    with pytest.raises(InvalidStateTransitionException):
        await env.service.accept(booked.session.id, env.tutor)


@pytest.mark.asyncio
async def test_only_session_tutor_or_admin_can_accept_or_decline(clock: Clock) -> None:
    env = make_env()
    first = await env.book()
    second = await env.book(slot_id="evt-a_slot_1")

    for outsider in (env.student, env.other_tutor):
        with pytest.raises(UnauthorizedException):
            await env.service.accept(first.session.id, outsider)
        with pytest.raises(UnauthorizedException):
            await env.service.decline(first.session.id, outsider)

    accepted = await env.service.accept(first.session.id, env.admin)
    declined = await env.service.decline(second.session.id, env.admin)

    assert accepted.session.status == SessionStatusEnum.SCHEDULED
    assert declined.session.status == SessionStatusEnum.DECLINED


@pytest.mark.asyncio
async def test_decline_releases_slot_for_other_students(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()

    result = await env.service.decline(booked.session.id, env.tutor, reason="viaje")

    assert result.session.status == SessionStatusEnum.DECLINED
    assert result.session.approval_status == ApprovalStatusEnum.DECLINED
    assert result.session.decline_reason == "viaje"
    assert env.store.bookings == []
    assert not await env.slot_is_booked("evt-a_slot_0")

    rebooked = await env.book(actor=env.other_student)
    assert rebooked.session.id != booked.session.id
    assert booked.session.id in env.store.sessions

    with pytest.raises(InvalidStateTransitionException):
        await env.service.accept(booked.session.id, env.tutor)


@pytest.mark.asyncio
async def test_cancel_with_enough_lead_time_releases_slot(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.accept(booked.session.id, env.tutor)
    clock.now = FIRST_SLOT_START - timedelta(hours=3)

    result = await env.service.cancel(booked.session.id, env.student, reason="enfermedad")

    assert result.session.status == SessionStatusEnum.CANCELLED
    assert result.session.cancelled_by_id == env.student.id
    assert result.session.cancellation_reason == "enfermedad"
    assert result.session.cancelled_at == clock.now
    assert env.store.bookings == []
    assert env.calendar.deleted == ["evt-1"]
    kind, payload = env.notifier.calls[-1]
    assert kind == NotificationKindEnum.SESSION_CANCELLED
    assert payload["recipient_ids"] == [env.tutor.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("lead", [timedelta(hours=1), timedelta(hours=2)])
async def test_cancel_inside_lead_window_is_rejected(clock: Clock, lead: timedelta) -> None:
    env = make_env()
    booked = await env.book()
    clock.now = FIRST_SLOT_START - lead

    with pytest.raises(TooLateToCancelException):
        await env.service.cancel(booked.session.id, env.student)
    assert booked.session.status == SessionStatusEnum.PENDING
    assert len(env.store.bookings) == 1


@pytest.mark.asyncio
async def test_cancel_twice_is_an_invalid_transition(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.cancel(booked.session.id, env.student)

    with pytest.raises(InvalidStateTransitionException):
        await env.service.cancel(booked.session.id, env.student)


@pytest.mark.asyncio
async def test_cancel_on_stale_session_row_frees_the_moved_booking(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    session_id = booked.session.id
    before_move = copy.copy(booked.session)
    await env.service.reschedule(session_id, "evt-b_slot_0", env.student)
    env.store.sessions[session_id] = before_move

    result = await env.service.cancel(session_id, env.student)

    assert result.session.status == SessionStatusEnum.CANCELLED
    assert env.store.bookings == []
    assert not await env.slot_is_booked("evt-b_slot_0")


@pytest.mark.asyncio
async def test_transitions_read_the_session_with_a_row_lock(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    session_id = booked.session.id

    await env.service.accept(session_id, env.tutor)
    await env.service.reschedule(session_id, "evt-a_slot_2", env.tutor)
    await env.service.cancel(session_id, env.student)
    await env.service.get_session(session_id, env.student)

    assert env.service.sessions_repository.locked == [session_id, session_id, session_id]


@pytest.mark.asyncio
async def test_outsider_cannot_cancel(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()

    with pytest.raises(UnauthorizedException):
        await env.service.cancel(booked.session.id, env.other_student)


@pytest.mark.asyncio
async def test_reschedule_moves_booking_and_keeps_session(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    session_id = booked.session.id

    result = await env.service.reschedule(session_id, "evt-b_slot_1", env.student, reason="choque de horario")

    assert result.session.id == session_id
    assert result.session.status == SessionStatusEnum.PENDING
    assert result.session.slot_id == "evt-b_slot_1"
    assert result.session.scheduled_start_at == SESSION_DAY + timedelta(hours=15)
    assert result.session.location == "ML-340"
    assert result.session.reschedule_reason == "choque de horario"
    assert [(item.slot_id, item.session_id) for item in env.store.bookings] == [("evt-b_slot_1", session_id)]
    assert not await env.slot_is_booked("evt-a_slot_0")
    kind, payload = env.notifier.calls[-1]
    assert kind == NotificationKindEnum.SESSION_RESCHEDULED
    assert payload["previous_start_at"] == FIRST_SLOT_START.isoformat()


@pytest.mark.asyncio
async def test_reschedule_of_scheduled_session_replaces_calendar_event(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.accept(booked.session.id, env.tutor)

    result = await env.service.reschedule(booked.session.id, "evt-a_slot_2", env.tutor)

    assert result.session.status == SessionStatusEnum.SCHEDULED
    assert env.calendar.deleted == ["evt-1"]
    assert result.session.calendar_event_id == "evt-2"


@pytest.mark.asyncio
async def test_reschedule_to_another_tutor_is_rejected(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()

    with pytest.raises(SlotUnavailableException):
        await env.service.reschedule(booked.session.id, "evt-c_slot_0", env.student)
    assert env.store.bookings[0].slot_id == "evt-a_slot_0"


@pytest.mark.asyncio
async def test_reschedule_to_booked_slot_keeps_original_booking(clock: Clock) -> None:
    env = make_env()
    mine = await env.book()
    await env.book(slot_id="evt-a_slot_1", actor=env.other_student)

    with pytest.raises(SlotAlreadyBookedException):
        await env.service.reschedule(mine.session.id, "evt-a_slot_1", env.student)

    assert mine.session.slot_id == "evt-a_slot_0"
    assert {item.slot_id for item in env.store.bookings} == {"evt-a_slot_0", "evt-a_slot_1"}


@pytest.mark.asyncio
async def test_reschedule_of_cancelled_session_is_rejected(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.cancel(booked.session.id, env.student)

    with pytest.raises(InvalidStateTransitionException):
        await env.service.reschedule(booked.session.id, "evt-b_slot_0", env.student)


@pytest.mark.asyncio
async def test_complete_requires_session_to_have_ended(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()

    with pytest.raises(InvalidStateTransitionException):
        await env.service.complete(booked.session.id, env.tutor)

    await env.service.accept(booked.session.id, env.tutor)
    clock.now = FIRST_SLOT_START + timedelta(minutes=30)
    with pytest.raises(InvalidStateTransitionException):
        await env.service.complete(booked.session.id, env.tutor)

    clock.now = FIRST_SLOT_START + timedelta(hours=1)
    result = await env.service.complete(booked.session.id, env.student, rating=5, comment="muy clara")

    assert result.session.status == SessionStatusEnum.COMPLETED
    assert result.session.rating == 5
    assert result.session.completed_at == clock.now
    # completing keeps the ledger entry as history of the held session
    assert len(env.store.bookings) == 1


@pytest.mark.asyncio
async def test_tutor_cannot_rate_own_session(clock: Clock) -> None:
    env = make_env()
    booked = await env.book()
    await env.service.accept(booked.session.id, env.tutor)
    clock.now = FIRST_SLOT_START + timedelta(hours=2)

    with pytest.raises(BusinessRuleException):
        await env.service.complete(booked.session.id, env.tutor, rating=5)


@pytest.mark.asyncio
async def test_listing_and_pending_queue(clock: Clock) -> None:
    env = make_env()
    first = await env.book()
    await env.book(slot_id="evt-a_slot_1", actor=env.other_student)
    await env.service.accept(first.session.id, env.tutor)

    items, total = await env.service.list_sessions(env.student, None, limit=20, offset=0)
    pending = await env.service.list_pending_for_tutor(env.tutor)

    assert total == 1
    assert items[0].id == first.session.id
    assert [item.student_id for item in pending] == [env.other_student.id]
    with pytest.raises(UnauthorizedException):
        await env.service.list_pending_for_tutor(env.student)
    with pytest.raises(UnauthorizedException):
        await env.service.get_session(first.session.id, env.other_student)
    assert (await env.service.get_session(first.session.id, env.admin)).id == first.session.id


@pytest.mark.asyncio
async def test_unknown_slot_is_not_found(clock: Clock) -> None:
    env = make_env()

    with pytest.raises(NotFoundException):
        await env.book(slot_id=f"{uuid4()}_slot_0")
