from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi import HTTPException

from calico.core.enums import RoleEnum
from calico.core.security import create_access_token
from calico.modules.identity.service import IdentityService, require_roles
from calico.shared.exceptions import NotFoundException, UnauthorizedException
from tests.fakes import FakeIdentityRepository, make_actor


def make_service(*users) -> IdentityService:
    return IdentityService(FakeIdentityRepository(list(users)))


@pytest.mark.asyncio
async def test_access_token_resolves_active_user() -> None:
    user = make_actor(role=RoleEnum.TUTOR)
    user.is_active = True

    resolved = await make_service(user).get_user_from_access_token(create_access_token(str(user.id)))

    assert resolved is user


@pytest.mark.asyncio
async def test_inactive_or_unknown_users_are_rejected() -> None:
    inactive = make_actor()
    inactive.is_active = False
    service = make_service(inactive)

    with pytest.raises(UnauthorizedException):
        await service.get_user_from_access_token(create_access_token(str(inactive.id)))
    with pytest.raises(UnauthorizedException):
        await service.get_user_from_access_token(create_access_token(str(uuid4())))


@pytest.mark.asyncio
async def test_non_access_token_type_is_rejected() -> None:
    user = make_actor()
    user.is_active = True

    with pytest.raises(UnauthorizedException):
        await make_service(user).get_user_from_access_token(create_access_token(str(user.id), type="refresh"))


@pytest.mark.asyncio
async def test_garbage_token_is_401() -> None:
    with pytest.raises(HTTPException) as exc:
        await make_service().get_user_from_access_token("not-a-jwt")
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_directory_lookup_of_missing_user_is_404() -> None:
    with pytest.raises(NotFoundException):
        await make_service().get_user(uuid4())


@pytest.mark.asyncio
async def test_role_guard() -> None:
    checker = require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)
    tutor = make_actor(role=RoleEnum.TUTOR)

    assert await checker(current_user=tutor) is tutor
    with pytest.raises(HTTPException) as exc:
        await checker(current_user=make_actor(role=RoleEnum.STUDENT))
    assert exc.value.status_code == 403
