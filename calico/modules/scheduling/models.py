"""Scheduling ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calico.core.database import Base, TimestampMixin

if TYPE_CHECKING:
    from calico.modules.identity.models import User


class AvailabilityWindow(TimestampMixin, Base):
    """Coarse block of tutor free time imported from an external calendar event."""

    __tablename__ = "availability_windows"
    __table_args__ = (CheckConstraint("end_at > start_at", name="window_range"),)

    # external calendar event id, or a generated id for manually created windows
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    tutor_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    course: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    html_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    tutor: Mapped["User"] = relationship(back_populates="availability_windows")
