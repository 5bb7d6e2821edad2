"""Scheduling API router."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from calico.core.config import get_settings
from calico.core.enums import RoleEnum
from calico.modules.identity.service import get_current_user, require_roles
from calico.modules.scheduling.schemas import (
    AvailabilitySyncRead,
    AvailabilitySyncRequest,
    SlotAvailabilityRead,
    SlotDayGroupRead,
    SlotRead,
    WindowCreate,
    WindowRead,
)
from calico.modules.scheduling.service import SchedulingService, get_scheduling_service
from calico.modules.scheduling.slots import group_slots_by_date
from calico.shared.utils import utc_now

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


def _range(start_at: datetime | None, end_at: datetime | None, days: int) -> tuple[datetime, datetime]:
    start = start_at or utc_now()
    return start, end_at or start + timedelta(days=days)


@router.post("/windows", response_model=WindowRead, status_code=status.HTTP_201_CREATED)
async def create_window(
    payload: WindowCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> WindowRead:
    """Create availability window."""
    window = await service.create_window(payload, current_user)
    return WindowRead.model_validate(window)


@router.delete("/windows/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_window(
    window_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> Response:
    await service.delete_window(window_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/windows/sync", response_model=AvailabilitySyncRead)
async def sync_windows(
    payload: AvailabilitySyncRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> AvailabilitySyncRead:
    """Pull availability from the tutor's calendar."""
    tutor_id = service.resolve_tutor_id(current_user, payload.tutor_id)
    summary = await service.sync_tutor_availability(
        tutor_id,
        access_token=payload.access_token,
        calendar_id=payload.calendar_id,
        days_ahead=payload.days_ahead,
    )
    return AvailabilitySyncRead(
        created=summary.created,
        updated=summary.updated,
        deleted=summary.deleted,
        skipped=summary.skipped,
    )


@router.get("/tutors/{tutor_id}/windows", response_model=list[WindowRead])
async def list_windows(
    tutor_id: UUID,
    start_at: datetime | None = Query(default=None),
    end_at: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[WindowRead]:
    start, end = _range(start_at, end_at, days=30)
    windows = await service.list_windows(tutor_id, start, end)
    return [WindowRead.model_validate(window) for window in windows]


@router.get("/tutors/{tutor_id}/slots", response_model=list[SlotRead])
async def list_tutor_slots(
    tutor_id: UUID,
    start_at: datetime | None = Query(default=None),
    end_at: datetime | None = Query(default=None),
    only_available: bool = Query(default=False),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[SlotRead]:
    """List generated slots with live booking state."""
    start, end = _range(start_at, end_at, days=7)
    slots = await service.get_tutor_slots(tutor_id, start, end, only_available=only_available)
    return [SlotRead.model_validate(slot) for slot in slots]


@router.get("/tutors/{tutor_id}/slots/by-day", response_model=list[SlotDayGroupRead])
async def list_tutor_slots_by_day(
    tutor_id: UUID,
    start_at: datetime | None = Query(default=None),
    end_at: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[SlotDayGroupRead]:
    start, end = _range(start_at, end_at, days=7)
    slots = await service.get_tutor_slots(tutor_id, start, end, only_available=True)
    grouped = group_slots_by_date(slots, get_settings().tzinfo)
    return [
        SlotDayGroupRead(day=day, slots=[SlotRead.model_validate(slot) for slot in day_slots])
        for day, day_slots in grouped.items()
    ]


@router.get("/tutors/{tutor_id}/slots/consecutive", response_model=list[list[SlotRead]])
async def list_consecutive_slots(
    tutor_id: UUID,
    count: int = Query(default=2, ge=1, le=12),
    start_at: datetime | None = Query(default=None),
    end_at: datetime | None = Query(default=None),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[list[SlotRead]]:
    """Find runs of back-to-back free slots, e.g. for a two hour session."""
    start, end = _range(start_at, end_at, days=7)
    groups = await service.get_consecutive_slots(tutor_id, count, start, end)
    return [[SlotRead.model_validate(slot) for slot in group] for group in groups]


@router.get("/slots/{slot_id}", response_model=SlotAvailabilityRead)
async def check_slot(
    slot_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> SlotAvailabilityRead:
    """Real-time availability check for one slot."""
    slot, reasons = await service.check_slot(slot_id)
    return SlotAvailabilityRead(slot=SlotRead.model_validate(slot), available=not reasons, reasons=reasons)
