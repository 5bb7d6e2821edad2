"""Joint availability queries across every tutor of a course."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from calico.core.config import get_settings
from calico.core.database import get_db_session
from calico.modules.joint.aggregator import (
    AvailabilityStats,
    JointSlot,
    TutorSlots,
    availability_stats,
    generate_joint_slots_for_day,
    generate_joint_slots_for_week,
)
from calico.modules.scheduling.courses import parse_course
from calico.modules.scheduling.service import SchedulingService, build_scheduling_service
from calico.shared.utils import day_bounds, utc_now

logger = logging.getLogger(__name__)


class JointAvailabilityService:
    """Read-only: never touches the booking ledger beyond annotating slots."""

    def __init__(self, scheduling_service: SchedulingService, tz: tzinfo) -> None:
        self.scheduling_service = scheduling_service
        self.tz = tz

    async def collect_tutor_slots(self, course: str, start_at: datetime, end_at: datetime) -> list[TutorSlots]:
        """Per-tutor slots for the course in range, tutors in first-seen window order."""
        course_code = parse_course(course)
        windows = await self.scheduling_service.repository.list_windows_for_course(course_code, start_at, end_at)
        slots = self.scheduling_service.generate(windows)
        # booking state is read again here, right before aggregation
        slots = await self.scheduling_service.booking_ledger.annotate_slots(slots)

        now = utc_now()
        per_tutor: dict[UUID, TutorSlots] = {}
        for slot in slots:
            if slot.start_at >= end_at or slot.end_at <= start_at:
                continue
            # started slots are no longer bookable
            if slot.start_at <= now:
                continue
            per_tutor.setdefault(slot.tutor_id, TutorSlots(tutor_id=slot.tutor_id)).slots.append(slot)
        logger.debug("Collected slots of %s tutors for course %s", len(per_tutor), course_code)
        return list(per_tutor.values())

    async def get_joint_slots_for_day(self, course: str, day: date) -> tuple[list[JointSlot], AvailabilityStats]:
        start_at, end_at = day_bounds(day, self.tz)
        per_tutor = await self.collect_tutor_slots(course, start_at, end_at)
        return generate_joint_slots_for_day(per_tutor, day, self.tz), availability_stats(per_tutor)

    async def get_joint_slots_for_week(
        self,
        course: str,
        start_day: date,
    ) -> tuple[dict[date, list[JointSlot]], AvailabilityStats]:
        start_at, _ = day_bounds(start_day, self.tz)
        _, end_at = day_bounds(start_day + timedelta(days=6), self.tz)
        per_tutor = await self.collect_tutor_slots(course, start_at, end_at)
        return generate_joint_slots_for_week(per_tutor, start_day, self.tz), availability_stats(per_tutor)


async def get_joint_availability_service(session: AsyncSession = Depends(get_db_session)) -> JointAvailabilityService:
    """Dependency provider for joint availability service."""
    settings = get_settings()
    return JointAvailabilityService(build_scheduling_service(session, settings), settings.tzinfo)
