"""Tutoring sessions API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from calico.core.enums import RoleEnum, SessionStatusEnum
from calico.modules.identity.service import get_current_user, require_roles
from calico.modules.sessions.schemas import (
    BookSlotRequest,
    SessionCompleteRequest,
    SessionRead,
    SessionReasonRequest,
    SessionRescheduleRequest,
    SessionTransitionRead,
)
from calico.modules.sessions.service import (
    SessionLifecycleService,
    SessionTransitionResult,
    get_session_lifecycle_service,
)
from calico.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _transition_read(result: SessionTransitionResult) -> SessionTransitionRead:
    return SessionTransitionRead(session=SessionRead.model_validate(result.session), warnings=result.warnings)


@router.post("/book-slot", response_model=SessionTransitionRead, status_code=status.HTTP_201_CREATED)
async def book_slot(
    payload: BookSlotRequest,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> SessionTransitionRead:
    """Claim a slot and open a session."""
    return _transition_read(await service.book_slot(payload, current_user))


@router.get("/my", response_model=Page[SessionRead])
async def list_my_sessions(
    status_filter: SessionStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> Page[SessionRead]:
    items, total = await service.list_sessions(current_user, status_filter, pagination.limit, pagination.offset)
    return build_page(items, total, pagination, serializer=SessionRead.model_validate)


@router.get("/pending", response_model=list[SessionRead])
async def list_pending_sessions(
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR)),
) -> list[SessionRead]:
    """Requests awaiting the tutor's answer."""
    items = await service.list_pending_for_tutor(current_user)
    return [SessionRead.model_validate(item) for item in items]


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(
    session_id: UUID,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> SessionRead:
    return SessionRead.model_validate(await service.get_session(session_id, current_user))


@router.post("/{session_id}/accept", response_model=SessionTransitionRead)
async def accept_session(
    session_id: UUID,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> SessionTransitionRead:
    return _transition_read(await service.accept(session_id, current_user))


@router.post("/{session_id}/decline", response_model=SessionTransitionRead)
async def decline_session(
    session_id: UUID,
    payload: SessionReasonRequest,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> SessionTransitionRead:
    return _transition_read(await service.decline(session_id, current_user, payload.reason))


@router.post("/{session_id}/cancel", response_model=SessionTransitionRead)
async def cancel_session(
    session_id: UUID,
    payload: SessionReasonRequest,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> SessionTransitionRead:
    return _transition_read(await service.cancel(session_id, current_user, payload.reason))


@router.post("/{session_id}/reschedule", response_model=SessionTransitionRead)
async def reschedule_session(
    session_id: UUID,
    payload: SessionRescheduleRequest,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> SessionTransitionRead:
    """Move a session to another slot of the same tutor."""
    result = await service.reschedule(session_id, payload.new_slot_id, current_user, payload.reason)
    return _transition_read(result)


@router.post("/{session_id}/complete", response_model=SessionTransitionRead)
async def complete_session(
    session_id: UUID,
    payload: SessionCompleteRequest,
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
    current_user=Depends(get_current_user),
) -> SessionTransitionRead:
    result = await service.complete(session_id, current_user, payload.rating, payload.comment)
    return _transition_read(result)
