"""Joint availability schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class JointSlotTutorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tutor_id: UUID
    slot_id: str
    parent_availability_id: str
    slot_index: int
    course: str
    location: str | None
    end_at: datetime


class JointSlotRead(BaseModel):
    """A start time together with every tutor free at that time."""

    model_config = ConfigDict(from_attributes=True)

    start_at: datetime
    end_at: datetime
    tutor_count: int
    tutors: list[JointSlotTutorRead]


class AvailabilityStatsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_tutors: int
    tutors_with_slots: int
    total_slots: int
    available_slots: int
    average_slots_per_tutor: float


class JointDayRead(BaseModel):
    course: str
    day: date
    slots: list[JointSlotRead]
    stats: AvailabilityStatsRead


class JointWeekRead(BaseModel):
    course: str
    start_day: date
    days: dict[date, list[JointSlotRead]]
    stats: AvailabilityStatsRead
