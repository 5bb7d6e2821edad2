"""Identity API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from calico.modules.identity.schemas import UserRead
from calico.modules.identity.service import IdentityService, get_current_user, get_identity_service

router = APIRouter(prefix="/identity", tags=["identity"])


@router.get("/me", response_model=UserRead)
async def read_me(current_user=Depends(get_current_user)) -> UserRead:
    """Return the authenticated user."""
    return UserRead.from_user(current_user)


@router.get("/users/{user_id}", response_model=UserRead)
async def read_user(
    user_id: UUID,
    service: IdentityService = Depends(get_identity_service),
    _=Depends(get_current_user),
) -> UserRead:
    """Look up a user in the directory."""
    user = await service.get_user(user_id)
    return UserRead.from_user(user)
