"""Booking ledger API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from calico.core.enums import RoleEnum
from calico.modules.booking.schemas import SlotBookingRead
from calico.modules.booking.service import BookingLedger, get_booking_ledger
from calico.modules.identity.service import require_roles

router = APIRouter(prefix="/booking", tags=["booking"])


@router.get("/availabilities/{availability_id}", response_model=list[SlotBookingRead])
async def list_availability_bookings(
    availability_id: str,
    ledger: BookingLedger = Depends(get_booking_ledger),
    current_user=Depends(require_roles(RoleEnum.TUTOR, RoleEnum.ADMIN)),
) -> list[SlotBookingRead]:
    """Booked slots of one availability window."""
    bookings = await ledger.list_bookings_for_availability(availability_id)
    if current_user.role.name == RoleEnum.TUTOR:
        bookings = [booking for booking in bookings if booking.tutor_id == current_user.id]
    return [SlotBookingRead.model_validate(booking) for booking in bookings]
