"""Scheduling schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from calico.core.enums import SlotStatusEnum


class WindowCreate(BaseModel):
    """Create availability window request."""

    id: str | None = Field(default=None, max_length=255)
    tutor_id: UUID | None = None
    title: str = Field(default="", max_length=255)
    course: str | None = Field(default=None, max_length=64)
    location: str | None = Field(default=None, max_length=255)
    description: str | None = None
    start_at: datetime
    end_at: datetime

    @model_validator(mode="after")
    def validate_range(self) -> "WindowCreate":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class WindowRead(BaseModel):
    """Availability window response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tutor_id: UUID
    title: str
    course: str | None
    location: str | None
    description: str | None
    start_at: datetime
    end_at: datetime
    recurring: bool
    source_calendar_id: str | None
    html_link: str | None


class AvailabilitySyncRequest(BaseModel):
    """Pull tutor availability from the external calendar."""

    access_token: str = Field(min_length=1)
    calendar_id: str | None = None
    tutor_id: UUID | None = None
    days_ahead: int | None = Field(default=None, gt=0, le=365)


class AvailabilitySyncRead(BaseModel):
    """Counts produced by a calendar sync."""

    created: int
    updated: int
    deleted: int
    skipped: int


class SlotRead(BaseModel):
    """Generated slot annotated with booking state."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_availability_id: str
    slot_index: int
    tutor_id: UUID
    course: str
    location: str | None
    title: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    status: SlotStatusEnum
    booked_by: UUID | None
    session_id: UUID | None
    html_link: str | None


class SlotAvailabilityRead(BaseModel):
    """Real-time availability check for one slot."""

    slot: SlotRead
    available: bool
    reasons: list[str]


class SlotDayGroupRead(BaseModel):
    """Slots grouped by local calendar day."""

    day: date
    slots: list[SlotRead]
