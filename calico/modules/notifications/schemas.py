"""Notifications schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from calico.core.enums import NotificationKindEnum


class NotificationRead(BaseModel):
    """Notification response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    kind: NotificationKindEnum
    title: str
    body: str
    payload: dict[str, Any]
    is_read: bool
    read_at: datetime | None
    created_at: datetime
