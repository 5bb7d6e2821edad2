"""Identity schemas."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr

from calico.core.enums import RoleEnum


class UserRead(BaseModel):
    """Public user profile."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    display_name: str
    timezone: str
    is_active: bool
    role: RoleEnum

    @classmethod
    def from_user(cls, user) -> "UserRead":
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            timezone=user.timezone,
            is_active=user.is_active,
            role=user.role.name,
        )
