"""Booking ledger ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calico.core.database import Base, BaseModelMixin, utc_now

if TYPE_CHECKING:
    from calico.modules.sessions.models import TutoringSession

SLOT_UNIQUE_CONSTRAINT = "uq_slot_bookings_parent_availability_id_slot_index"
SESSION_UNIQUE_CONSTRAINT = "uq_slot_bookings_session_id"


class SlotBooking(BaseModelMixin, Base):
    """Durable claim on one (availability window, slot index) pair.

    The unique constraint is what serializes concurrent claims across
    processes: the second insert for the same key is rejected by the database.
    """

    __tablename__ = "slot_bookings"
    __table_args__ = (
        UniqueConstraint("parent_availability_id", "slot_index", name=SLOT_UNIQUE_CONSTRAINT),
        UniqueConstraint("session_id", name=SESSION_UNIQUE_CONSTRAINT),
    )

    parent_availability_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_id: Mapped[str] = mapped_column(String(300), nullable=False)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    tutor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    student_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("tutoring_sessions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    slot_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    slot_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    course: Mapped[str] = mapped_column(String(64), nullable=False)
    booked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    session: Mapped["TutoringSession"] = relationship(back_populates="booking")
