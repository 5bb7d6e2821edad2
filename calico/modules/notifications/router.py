"""Notifications API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from calico.modules.identity.service import get_current_user
from calico.modules.notifications.schemas import NotificationRead
from calico.modules.notifications.service import NotificationsService, get_notifications_service
from calico.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/my", response_model=Page[NotificationRead])
async def list_my_notifications(
    unread_only: bool = Query(default=False),
    pagination=Depends(get_pagination_params),
    service: NotificationsService = Depends(get_notifications_service),
    current_user=Depends(get_current_user),
) -> Page[NotificationRead]:
    """List notifications for current user."""
    items, total = await service.list_my_notifications(
        current_user,
        pagination.limit,
        pagination.offset,
        unread_only=unread_only,
    )
    return build_page(items, total, pagination, serializer=NotificationRead.model_validate)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: UUID,
    service: NotificationsService = Depends(get_notifications_service),
    current_user=Depends(get_current_user),
) -> NotificationRead:
    notification = await service.mark_read(notification_id, current_user)
    return NotificationRead.model_validate(notification)
