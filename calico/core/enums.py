"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


class SlotStatusEnum(StrEnum):
    """Bookable slot status derived from the booking ledger."""

    AVAILABLE = "available"
    BOOKED = "booked"


class SessionStatusEnum(StrEnum):
    """Tutoring session lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ApprovalStatusEnum(StrEnum):
    """Tutor approval status of a session."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    NOT_REQUIRED = "not_required"


class NotificationKindEnum(StrEnum):
    """Session lifecycle events delivered to users."""

    SESSION_REQUESTED = "session.requested"
    SESSION_SCHEDULED = "session.scheduled"
    SESSION_ACCEPTED = "session.accepted"
    SESSION_DECLINED = "session.declined"
    SESSION_CANCELLED = "session.cancelled"
    SESSION_RESCHEDULED = "session.rescheduled"
    SESSION_COMPLETED = "session.completed"
