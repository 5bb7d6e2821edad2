"""Slot generation from coarse availability windows.

Slots are never stored. They are derived on every read from the current
availability windows, so their identity has to be a pure function of the
window: ``{availability_id}_slot_{index}``. Booking state lives in the
booking ledger and is joined onto freshly generated slots afterwards.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol
from uuid import UUID

from calico.core.enums import SlotStatusEnum
from calico.modules.scheduling.courses import DEFAULT_COURSE_LABEL, resolve_course
from calico.shared.exceptions import BusinessRuleException
from calico.shared.utils import ensure_utc

SLOT_ID_SEPARATOR = "_slot_"
DEFAULT_SLOT_DURATION = timedelta(hours=1)
CONSECUTIVE_TOLERANCE = timedelta(minutes=1)


class WindowLike(Protocol):
    id: str
    tutor_id: UUID
    title: str
    course: str | None
    location: str | None
    start_at: datetime
    end_at: datetime
    html_link: str | None


@dataclass(frozen=True, slots=True)
class Slot:
    id: str
    parent_availability_id: str
    slot_index: int
    tutor_id: UUID
    course: str
    location: str | None
    start_at: datetime
    end_at: datetime
    title: str = ""
    html_link: str | None = None
    status: SlotStatusEnum = SlotStatusEnum.AVAILABLE
    booked_by: UUID | None = None
    session_id: UUID | None = None

    @property
    def is_booked(self) -> bool:
        return self.status == SlotStatusEnum.BOOKED

    @property
    def duration(self) -> timedelta:
        return self.end_at - self.start_at

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def as_booked(self, student_id: UUID | None, session_id: UUID | None) -> "Slot":
        return replace(self, status=SlotStatusEnum.BOOKED, booked_by=student_id, session_id=session_id)

    def as_available(self) -> "Slot":
        return replace(self, status=SlotStatusEnum.AVAILABLE, booked_by=None, session_id=None)


def build_slot_id(availability_id: str, slot_index: int) -> str:
    return f"{availability_id}{SLOT_ID_SEPARATOR}{slot_index}"


def parse_slot_id(slot_id: str) -> tuple[str, int]:
    """Split a slot id back into (availability id, slot index)."""
    parent_id, separator, index = slot_id.rpartition(SLOT_ID_SEPARATOR)
    if not separator or not parent_id or not index.isdigit():
        raise BusinessRuleException(f"Malformed slot id: {slot_id}")
    return parent_id, int(index)


def generate_slots(
    window: WindowLike,
    slot_duration: timedelta = DEFAULT_SLOT_DURATION,
    default_course: str = DEFAULT_COURSE_LABEL,
) -> list[Slot]:
    """Cut one availability window into fixed-length slots.

    A trailing partial period becomes a shorter last slot, so the slots cover
    ``[start, end)`` exactly. A window with ``end <= start`` yields nothing.
    """
    start_at = ensure_utc(window.start_at)
    end_at = ensure_utc(window.end_at)
    if end_at <= start_at:
        return []

    slot_count, remainder = divmod(end_at - start_at, slot_duration)
    if remainder:
        slot_count += 1

    course = resolve_course(window.course, window.title, default_course)
    slots: list[Slot] = []
    for index in range(slot_count):
        slot_start = start_at + index * slot_duration
        slot_end = min(slot_start + slot_duration, end_at)
        if slot_end <= slot_start:
            continue
        slots.append(
            Slot(
                id=build_slot_id(window.id, index),
                parent_availability_id=window.id,
                slot_index=index,
                tutor_id=window.tutor_id,
                course=course,
                location=window.location,
                start_at=slot_start,
                end_at=slot_end,
                title=window.title,
                html_link=window.html_link,
            ),
        )
    return slots


def generate_slots_from_availabilities(
    windows: Iterable[WindowLike],
    slot_duration: timedelta = DEFAULT_SLOT_DURATION,
    default_course: str = DEFAULT_COURSE_LABEL,
) -> list[Slot]:
    """Flat-map ``generate_slots`` keeping input order."""
    slots: list[Slot] = []
    for window in windows:
        slots.extend(generate_slots(window, slot_duration, default_course))
    return slots


def is_slot_available(slot: Slot, now: datetime) -> bool:
    return not slot.is_booked and slot.start_at > now


def filter_available_slots(slots: Iterable[Slot], now: datetime) -> list[Slot]:
    """Keep future, unbooked slots."""
    return [slot for slot in slots if is_slot_available(slot, now)]


def group_slots_by_date(slots: Iterable[Slot], tz: tzinfo) -> dict[date, list[Slot]]:
    """Group slots by local calendar day, each day sorted by start time."""
    grouped: dict[date, list[Slot]] = defaultdict(list)
    for slot in slots:
        grouped[slot.start_at.astimezone(tz).date()].append(slot)
    return {day: sorted(items, key=lambda item: item.start_at) for day, items in sorted(grouped.items())}


def find_consecutive_available_slots(
    slots: Iterable[Slot],
    count: int,
    now: datetime,
) -> list[list[Slot]]:
    """Return every run of ``count`` back-to-back available slots of one tutor."""
    if count < 1:
        raise BusinessRuleException("Consecutive slot count must be positive")

    available = sorted(filter_available_slots(slots, now), key=lambda item: (str(item.tutor_id), item.start_at))
    groups: list[list[Slot]] = []
    for first in range(len(available) - count + 1):
        group = available[first : first + count]
        if all(
            current.tutor_id == previous.tutor_id
            and abs(current.start_at - previous.end_at) <= CONSECUTIVE_TOLERANCE
            for previous, current in zip(group, group[1:])
        ):
            groups.append(group)
    return groups


def validate_slot_for_booking(slot: Slot | None, now: datetime, min_advance: timedelta) -> list[str]:
    """Collect the reasons a slot cannot be booked right now (empty when bookable)."""
    if slot is None:
        return ["Slot not found"]

    errors: list[str] = []
    if slot.is_booked:
        errors.append("This slot is already booked by another student")
    if slot.start_at <= now:
        errors.append("Cannot book a slot in the past")
    elif slot.start_at < now + min_advance:
        minutes = int(min_advance.total_seconds() // 60)
        errors.append(f"Slots must be booked at least {minutes} minutes in advance")
    return errors
