"""Holidays API endpoints."""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from swimschool.api.dependencies import AdminUser, DbSession
from swimschool.services.holidays import HolidayService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/holidays", tags=["holidays"])


class HolidayCreate(BaseModel):
    """Holiday creation model. Set at most one of template_id/level_id."""

    name: str
    start_date: date
    end_date: date
    template_id: Optional[int] = None
    level_id: Optional[int] = None
    note: Optional[str] = None


class HolidayUpdate(BaseModel):
    name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    template_id: Optional[int] = None
    level_id: Optional[int] = None
    note: Optional[str] = None


class HolidayResponse(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    template_id: Optional[int] = None
    level_id: Optional[int] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/", response_model=List[HolidayResponse])
async def get_holidays(
    db: DbSession,
    admin: AdminUser,
    start: Optional[date] = Query(None, description="Only holidays ending on/after this day"),
    end: Optional[date] = Query(None, description="Only holidays starting on/before this day"),
):
    return await HolidayService(db).list_holidays(start, end)


@router.get("/{holiday_id}", response_model=HolidayResponse)
async def get_holiday(holiday_id: int, db: DbSession, admin: AdminUser):
    return await HolidayService(db).get_holiday(holiday_id)


@router.post("/", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
async def create_holiday(holiday_data: HolidayCreate, db: DbSession, admin: AdminUser):
    """Create a holiday and recompute affected enrolments."""
    return await HolidayService(db).create_holiday(
        **holiday_data.model_dump(), actor=admin.username
    )


@router.put("/{holiday_id}", response_model=HolidayResponse)
async def update_holiday(
    holiday_id: int, holiday_data: HolidayUpdate, db: DbSession, admin: AdminUser
):
    changes = holiday_data.model_dump(exclude_unset=True)
    return await HolidayService(db).update_holiday(holiday_id, actor=admin.username, **changes)


@router.delete("/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_holiday(holiday_id: int, db: DbSession, admin: AdminUser) -> None:
    await HolidayService(db).delete_holiday(holiday_id, actor=admin.username)
