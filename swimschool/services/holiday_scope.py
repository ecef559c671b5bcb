"""Holiday scope resolution.

A holiday is scoped to a single template, else to a level, else it is
global. Scopes never widen: a template-scoped holiday does not apply to other
templates of the same level.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import and_, false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.models import Holiday

logger = logging.getLogger(__name__)


def applies_to_template(holiday, template) -> bool:
    """Whether ``holiday`` is in scope for ``template``.

    Works on ORM rows or any object with ``template_id``/``level_id``
    (holiday) and ``id``/``level_id`` (template).
    """
    if holiday.template_id is not None:
        return holiday.template_id == template.id
    if holiday.level_id is not None:
        return holiday.level_id == template.level_id
    return True


def range_includes_day_key(holiday, day_key: date) -> bool:
    """Inclusive range check."""
    return holiday.start_date <= day_key <= holiday.end_date


def holiday_excludes(holidays: Iterable, template, day_key: date) -> bool:
    """Whether any in-scope holiday covers ``day_key``.

    Membership test only, so overlapping ranges exclude a date once.
    """
    return any(
        applies_to_template(h, template) and range_includes_day_key(h, day_key)
        for h in holidays
    )


def holidays_for_template(holidays: Iterable, template) -> list:
    return [h for h in holidays if applies_to_template(h, template)]


def holiday_scope_clause(templates: Iterable):
    """One SQL predicate matching every holiday that may apply to ``templates``."""
    templates = list(templates)
    if not templates:
        return false()

    template_ids = sorted({t.id for t in templates if t.id is not None})
    level_ids = sorted({t.level_id for t in templates if t.level_id is not None})

    clauses = [and_(Holiday.template_id.is_(None), Holiday.level_id.is_(None))]
    if template_ids:
        clauses.append(Holiday.template_id.in_(template_ids))
    if level_ids:
        clauses.append(
            and_(Holiday.template_id.is_(None), Holiday.level_id.in_(level_ids))
        )
    return or_(*clauses)


async def load_holidays_for_templates(
    db: AsyncSession,
    templates: Iterable,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[Holiday]:
    """Fetch all holidays in scope for ``templates`` with a single query.

    ``start``/``end`` bound the ranges returned to those overlapping the window.
    """
    templates = list(templates)
    if not templates:
        return []

    query = select(Holiday).where(holiday_scope_clause(templates))
    if start is not None:
        query = query.where(Holiday.end_date >= start)
    if end is not None:
        query = query.where(Holiday.start_date <= end)

    result = await db.execute(query.order_by(Holiday.start_date, Holiday.id))
    holidays = list(result.scalars().all())
    logger.debug(
        f"Loaded {len(holidays)} holidays for templates "
        f"{[t.id for t in templates]}"
    )
    return holidays
