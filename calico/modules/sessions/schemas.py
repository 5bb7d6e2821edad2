"""Tutoring session schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from calico.core.enums import ApprovalStatusEnum, SessionStatusEnum


class BookSlotRequest(BaseModel):
    """Claim a generated slot.

    ``student_id`` is only honoured when a tutor or admin books on behalf of a
    student; such bookings skip the approval step.
    """

    slot_id: str = Field(min_length=1, max_length=300)
    notes: str | None = Field(default=None, max_length=2000)
    course: str | None = Field(default=None, max_length=64)
    student_id: UUID | None = None


class SessionReasonRequest(BaseModel):
    """Decline or cancel request."""

    reason: str | None = Field(default=None, max_length=512)


class SessionRescheduleRequest(BaseModel):
    """Move a session to another slot of the same tutor."""

    new_slot_id: str = Field(min_length=1, max_length=300)
    reason: str | None = Field(default=None, max_length=512)


class SessionCompleteRequest(BaseModel):
    """Mark a session as held, optionally with the student's rating."""

    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)


class SessionRead(BaseModel):
    """Tutoring session response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tutor_id: UUID
    student_id: UUID
    course: str
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    location: str | None
    notes: str | None
    price: int
    status: SessionStatusEnum
    approval_status: ApprovalStatusEnum
    parent_availability_id: str
    slot_index: int
    slot_id: str
    calendar_event_id: str | None
    calendar_html_link: str | None
    accepted_at: datetime | None
    declined_at: datetime | None
    decline_reason: str | None
    cancelled_at: datetime | None
    cancelled_by_id: UUID | None
    cancellation_reason: str | None
    rescheduled_at: datetime | None
    reschedule_reason: str | None
    completed_at: datetime | None
    rating: int | None
    rating_comment: str | None
    created_at: datetime
    updated_at: datetime


class SessionTransitionRead(BaseModel):
    """Result of a lifecycle transition; warnings list failed best-effort side effects."""

    session: SessionRead
    warnings: list[str] = Field(default_factory=list)
