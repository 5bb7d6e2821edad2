"""Joint availability API router."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from calico.modules.identity.service import get_current_user
from calico.modules.joint.schemas import AvailabilityStatsRead, JointDayRead, JointSlotRead, JointWeekRead
from calico.modules.joint.service import JointAvailabilityService, get_joint_availability_service
from calico.modules.scheduling.courses import parse_course

router = APIRouter(prefix="/joint-availability", tags=["joint-availability"])


@router.get("/{course}/day", response_model=JointDayRead)
async def get_joint_day(
    course: str,
    day: date = Query(),
    service: JointAvailabilityService = Depends(get_joint_availability_service),
    current_user=Depends(get_current_user),
) -> JointDayRead:
    """Times on ``day`` at which at least one tutor of the course is free."""
    joint_slots, stats = await service.get_joint_slots_for_day(course, day)
    return JointDayRead(
        course=parse_course(course),
        day=day,
        slots=[JointSlotRead.model_validate(item) for item in joint_slots],
        stats=AvailabilityStatsRead.model_validate(stats),
    )


@router.get("/{course}/week", response_model=JointWeekRead)
async def get_joint_week(
    course: str,
    start_day: date = Query(),
    service: JointAvailabilityService = Depends(get_joint_availability_service),
    current_user=Depends(get_current_user),
) -> JointWeekRead:
    days, stats = await service.get_joint_slots_for_week(course, start_day)
    return JointWeekRead(
        course=parse_course(course),
        start_day=start_day,
        days={day: [JointSlotRead.model_validate(item) for item in items] for day, items in days.items()},
        stats=AvailabilityStatsRead.model_validate(stats),
    )
