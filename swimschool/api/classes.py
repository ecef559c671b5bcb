"""Class occurrence endpoints: cancellations and capacity."""

import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from swimschool.api.dependencies import AdminUser, DbSession
from swimschool.core.exceptions import NotFoundError
from swimschool.models import ClassTemplate
from swimschool.services.capacity import get_capacity_snapshot
from swimschool.services.cancellations import cancel_class_occurrence, uncancel_class_occurrence

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/classes", tags=["classes"])


class CancellationCreate(BaseModel):
    reason: Optional[str] = None


class CancellationResponse(BaseModel):
    id: int
    template_id: int
    session_date: date = Field(validation_alias="date")
    reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CapacityResponse(BaseModel):
    template_id: int
    template_name: Optional[str] = None
    day_of_week: Optional[int] = None
    start_time: Optional[time] = None
    occurrence_date: date
    capacity: Optional[int] = None
    current_count: int
    projected_count: int
    exceeded: bool


@router.post(
    "/{template_id}/cancellations/{day}",
    response_model=CancellationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def cancel_occurrence(
    template_id: int,
    day: date,
    db: DbSession,
    admin: AdminUser,
    payload: Optional[CancellationCreate] = None,
):
    """Cancel one occurrence of a class."""
    return await cancel_class_occurrence(
        db, template_id, day, reason=payload.reason if payload else None, actor=admin.username
    )


@router.delete("/{template_id}/cancellations/{day}", status_code=status.HTTP_204_NO_CONTENT)
async def restore_occurrence(template_id: int, day: date, db: DbSession, admin: AdminUser) -> None:
    await uncancel_class_occurrence(db, template_id, day, actor=admin.username)


@router.get("/{template_id}/capacity/{day}", response_model=CapacityResponse)
async def get_occurrence_capacity(
    template_id: int,
    day: date,
    db: DbSession,
    admin: AdminUser,
    additional: int = Query(1, ge=0, le=50),
) -> CapacityResponse:
    """Headcount for an occurrence and whether adding students would overfill it."""
    template = await db.get(ClassTemplate, template_id)
    if template is None:
        raise NotFoundError(f"Class template {template_id} not found")

    snapshot = await get_capacity_snapshot(db, template, day, additional)
    return CapacityResponse(
        template_id=template.id,
        template_name=template.name,
        day_of_week=template.day_of_week,
        start_time=template.start_time,
        occurrence_date=day,
        capacity=snapshot.capacity,
        current_count=snapshot.current_count,
        projected_count=snapshot.projected_count,
        exceeded=snapshot.exceeded,
    )
