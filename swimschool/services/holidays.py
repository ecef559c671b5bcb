"""Holiday management service."""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.exceptions import NotFoundError, ValidationError
from swimschool.models import ClassTemplate, CoverageAuditReason, Holiday, Level
from swimschool.services.recompute import ChangedRange, SweepResult, recompute_holiday_enrolments

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "start_date", "end_date", "template_id", "level_id", "note")


def _changed_range(holiday: Holiday) -> ChangedRange:
    return ChangedRange(
        start=holiday.start_date,
        end=holiday.end_date,
        template_id=holiday.template_id,
        level_id=holiday.level_id,
    )


class HolidayService:
    """Holiday CRUD. Every mutation is followed by a coverage recompute."""

    def __init__(self, db: AsyncSession, session_factory=None):
        self.db = db
        self.session_factory = session_factory
        self.last_sweep: Optional[SweepResult] = None

    async def _validate(self, holiday: Holiday) -> None:
        if holiday.end_date < holiday.start_date:
            raise ValidationError("Holiday end date must be on or after the start date")
        if holiday.template_id is not None and holiday.level_id is not None:
            raise ValidationError("A holiday can be scoped to a class or a level, not both")
        if holiday.template_id is not None and await self.db.get(ClassTemplate, holiday.template_id) is None:
            raise NotFoundError(f"Class template {holiday.template_id} not found")
        if holiday.level_id is not None and await self.db.get(Level, holiday.level_id) is None:
            raise NotFoundError(f"Level {holiday.level_id} not found")

    async def _recompute(self, ranges: List[ChangedRange], reason: CoverageAuditReason, actor):
        self.last_sweep = await recompute_holiday_enrolments(
            ranges, reason, self.session_factory, actor
        )
        if self.last_sweep.failed:
            logger.warning(
                f"Holiday recompute left {len(self.last_sweep.failed)} enrolments "
                f"for the next sweep"
            )

    async def get_holiday(self, holiday_id: int) -> Holiday:
        holiday = await self.db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundError(f"Holiday {holiday_id} not found")
        return holiday

    async def list_holidays(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Holiday]:
        query = select(Holiday)
        if start is not None:
            query = query.where(Holiday.end_date >= start)
        if end is not None:
            query = query.where(Holiday.start_date <= end)
        result = await self.db.execute(query.order_by(Holiday.start_date, Holiday.id))
        return list(result.scalars().all())

    async def create_holiday(
        self,
        name: str,
        start_date: date,
        end_date: date,
        template_id: Optional[int] = None,
        level_id: Optional[int] = None,
        note: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Holiday:
        holiday = Holiday(
            name=name,
            start_date=start_date,
            end_date=end_date,
            template_id=template_id,
            level_id=level_id,
            note=note,
        )
        try:
            await self._validate(holiday)
            self.db.add(holiday)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error creating holiday: {e}")
            raise

        logger.info(f"🏖️ Holiday created: {holiday}")
        await self._recompute([_changed_range(holiday)], CoverageAuditReason.HOLIDAY_ADDED, actor)
        return holiday

    async def update_holiday(self, holiday_id: int, actor: Optional[str] = None, **changes) -> Holiday:
        """Update a holiday and recompute both its old and new ranges."""
        try:
            holiday = await self.get_holiday(holiday_id)
            previous = _changed_range(holiday)
            for field_name, value in changes.items():
                if field_name not in UPDATABLE_FIELDS:
                    raise ValidationError(f"Cannot update holiday field '{field_name}'")
                setattr(holiday, field_name, value)
            await self._validate(holiday)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error updating holiday {holiday_id}: {e}")
            raise

        ranges = [previous]
        current = _changed_range(holiday)
        if current != previous:
            ranges.append(current)
        logger.info(f"Holiday {holiday_id} updated: {previous} -> {current}")
        await self._recompute(ranges, CoverageAuditReason.HOLIDAY_UPDATED, actor)
        return holiday

    async def delete_holiday(self, holiday_id: int, actor: Optional[str] = None) -> None:
        try:
            holiday = await self.get_holiday(holiday_id)
            previous = _changed_range(holiday)
            await self.db.delete(holiday)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error deleting holiday {holiday_id}: {e}")
            raise

        logger.info(f"Holiday {holiday_id} deleted")
        await self._recompute([previous], CoverageAuditReason.HOLIDAY_REMOVED, actor)
