"""Merge several tutors' slots into shared time buckets."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from uuid import UUID

from calico.modules.scheduling.slots import Slot


@dataclass(slots=True)
class TutorSlots:
    tutor_id: UUID
    slots: list[Slot] = field(default_factory=list)


@dataclass(slots=True)
class JointSlotTutor:
    tutor_id: UUID
    slot_id: str
    parent_availability_id: str
    slot_index: int
    course: str
    location: str | None
    end_at: datetime


@dataclass(slots=True)
class JointSlot:
    start_at: datetime
    end_at: datetime
    tutors: list[JointSlotTutor] = field(default_factory=list)

    @property
    def tutor_count(self) -> int:
        return len(self.tutors)


@dataclass(slots=True)
class AvailabilityStats:
    total_tutors: int
    tutors_with_slots: int
    total_slots: int
    available_slots: int

    @property
    def average_slots_per_tutor(self) -> float:
        if not self.total_tutors:
            return 0.0
        return round(self.total_slots / self.total_tutors, 2)


def generate_joint_slots_for_day(per_tutor: Sequence[TutorSlots], day: date, tz: tzinfo) -> list[JointSlot]:
    """Bucket the tutors' available slots on ``day`` by identical start instant.

    Only slots whose status is available take part, so the input must come
    straight from the booking ledger. Buckets are ordered by start; tutors
    inside a bucket keep the order in which they were supplied.
    """
    buckets: dict[datetime, JointSlot] = {}
    for entry in per_tutor:
        for slot in entry.slots:
            if slot.is_booked or slot.start_at.astimezone(tz).date() != day:
                continue
            bucket = buckets.get(slot.start_at)
            if bucket is None:
                bucket = buckets[slot.start_at] = JointSlot(start_at=slot.start_at, end_at=slot.end_at)
            bucket.end_at = max(bucket.end_at, slot.end_at)
            bucket.tutors.append(
                JointSlotTutor(
                    tutor_id=entry.tutor_id,
                    slot_id=slot.id,
                    parent_availability_id=slot.parent_availability_id,
                    slot_index=slot.slot_index,
                    course=slot.course,
                    location=slot.location,
                    end_at=slot.end_at,
                ),
            )
    return [buckets[start] for start in sorted(buckets)]


def generate_joint_slots_for_week(
    per_tutor: Sequence[TutorSlots],
    start_day: date,
    tz: tzinfo,
) -> dict[date, list[JointSlot]]:
    """Seven consecutive days of joint slots, keyed by day (empty days included)."""
    return {
        start_day + timedelta(days=offset): generate_joint_slots_for_day(per_tutor, start_day + timedelta(days=offset), tz)
        for offset in range(7)
    }


def availability_stats(per_tutor: Iterable[TutorSlots]) -> AvailabilityStats:
    entries = list(per_tutor)
    return AvailabilityStats(
        total_tutors=len(entries),
        tutors_with_slots=sum(1 for entry in entries if entry.slots),
        total_slots=sum(len(entry.slots) for entry in entries),
        available_slots=sum(1 for entry in entries for slot in entry.slots if not slot.is_booked),
    )
