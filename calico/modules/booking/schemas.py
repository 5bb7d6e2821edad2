"""Booking ledger schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SlotBookingRead(BaseModel):
    """Booking record response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    parent_availability_id: str
    slot_index: int
    slot_id: str
    tutor_id: UUID
    student_id: UUID
    session_id: UUID
    slot_start_at: datetime
    slot_end_at: datetime
    course: str
    booked_at: datetime
