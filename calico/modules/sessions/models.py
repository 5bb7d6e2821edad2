"""Tutoring session ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calico.core.database import Base, BaseModelMixin
from calico.core.enums import ApprovalStatusEnum, SessionStatusEnum

if TYPE_CHECKING:
    from calico.modules.booking.models import SlotBooking
    from calico.modules.identity.models import User


class TutoringSession(BaseModelMixin, Base):
    """Student-facing tutoring appointment. Never hard-deleted."""

    __tablename__ = "tutoring_sessions"

    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    course: Mapped[str] = mapped_column(String(64), nullable=False)
    scheduled_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[SessionStatusEnum] = mapped_column(
        SAEnum(SessionStatusEnum, name="session_status_enum", native_enum=False),
        default=SessionStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    approval_status: Mapped[ApprovalStatusEnum] = mapped_column(
        SAEnum(ApprovalStatusEnum, name="approval_status_enum", native_enum=False),
        default=ApprovalStatusEnum.PENDING,
        nullable=False,
    )

    parent_availability_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_id: Mapped[str] = mapped_column(String(300), nullable=False)

    calendar_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    calendar_html_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    rescheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reschedule_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    tutor: Mapped["User"] = relationship(foreign_keys=[tutor_id])
    student: Mapped["User"] = relationship(foreign_keys=[student_id])
    booking: Mapped["SlotBooking | None"] = relationship(back_populates="session", uselist=False)
