"""Makeup availability and booking endpoints."""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from swimschool.api.dependencies import AdminUser, DbSession
from swimschool.models import MakeupBookingStatus
from swimschool.services.capacity import compute_makeup_availabilities_for_occurrences
from swimschool.services.makeups import book_makeup, cancel_makeup_booking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/makeups", tags=["makeups"])


class OccurrenceRef(BaseModel):
    template_id: int
    session_date: date


class AvailabilityRequest(BaseModel):
    occurrences: List[OccurrenceRef] = Field(..., max_length=500)


class AvailabilityResponse(BaseModel):
    template_id: int
    session_date: date
    capacity: int
    scheduled_count: int
    excused_scheduled_count: int
    booked_makeups_count: int
    available: int
    cancelled: bool = False


class BookingCreate(BaseModel):
    makeup_credit_id: int
    target_class_id: int
    target_session_date: date


class BookingResponse(BaseModel):
    id: int
    makeup_credit_id: int
    student_id: int
    target_class_id: int
    target_session_date: date
    status: MakeupBookingStatus
    booked_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.post("/availability", response_model=List[AvailabilityResponse])
async def get_makeup_availability(
    request: AvailabilityRequest, db: DbSession, admin: AdminUser
) -> List[AvailabilityResponse]:
    """Free makeup seats for a batch of occurrences."""
    keys = [(o.template_id, o.session_date) for o in request.occurrences]
    availabilities = await compute_makeup_availabilities_for_occurrences(db, keys)
    return [
        AvailabilityResponse(
            template_id=a.template_id,
            session_date=a.session_date,
            capacity=a.capacity,
            scheduled_count=a.scheduled_count,
            excused_scheduled_count=a.excused_scheduled_count,
            booked_makeups_count=a.booked_makeups_count,
            available=a.available,
            cancelled=a.cancelled,
        )
        for a in availabilities.values()
    ]


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_makeup_booking(booking_data: BookingCreate, db: DbSession, admin: AdminUser):
    """Book a makeup. 409 when the seat was taken concurrently."""
    return await book_makeup(
        db,
        booking_data.makeup_credit_id,
        booking_data.target_class_id,
        booking_data.target_session_date,
        booked_by=admin.username,
    )


@router.delete("/bookings/{booking_id}", response_model=BookingResponse)
async def delete_makeup_booking(booking_id: int, db: DbSession, admin: AdminUser):
    return await cancel_makeup_booking(db, booking_id)
