"""Loading enrolments together with what coverage needs to know about them."""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from swimschool.core.exceptions import NotFoundError
from swimschool.models import (
    ClassCancellation,
    ClassTemplate,
    Enrolment,
    EnrolmentClassAssignment,
    Holiday,
)
from swimschool.services.holiday_scope import load_holidays_for_templates


def enrolment_query():
    """Select an enrolment with plan, student and every assigned template."""
    return select(Enrolment).options(
        selectinload(Enrolment.plan),
        selectinload(Enrolment.student),
        selectinload(Enrolment.template),
        selectinload(Enrolment.class_assignments).selectinload(
            EnrolmentClassAssignment.template
        ),
    )


async def load_enrolment(db: AsyncSession, enrolment_id: int) -> Enrolment:
    result = await db.execute(enrolment_query().where(Enrolment.id == enrolment_id))
    enrolment = result.scalar_one_or_none()
    if enrolment is None:
        raise NotFoundError(f"Enrolment {enrolment_id} not found")
    return enrolment


def resolve_templates(enrolment: Enrolment) -> List[ClassTemplate]:
    """Assigned templates, deduplicated, falling back to the legacy pointer."""
    unique = {}
    for template in enrolment.assigned_templates:
        unique.setdefault(template.id, template)
    return list(unique.values())


@dataclass
class CoverageContext:
    """Calendar inputs for one enrolment's coverage computations."""

    enrolment: Enrolment
    templates: List[ClassTemplate]
    holidays: List[Holiday] = field(default_factory=list)
    cancellations: List[ClassCancellation] = field(default_factory=list)


async def load_cancellations(
    db: AsyncSession,
    template_ids: List[int],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[ClassCancellation]:
    if not template_ids:
        return []
    query = select(ClassCancellation).where(ClassCancellation.template_id.in_(template_ids))
    if start is not None:
        query = query.where(ClassCancellation.date >= start)
    if end is not None:
        query = query.where(ClassCancellation.date <= end)
    result = await db.execute(query)
    return list(result.scalars().all())


async def load_coverage_context(
    db: AsyncSession, enrolment: Enrolment, since: Optional[date] = None
) -> CoverageContext:
    """Templates plus every holiday and cancellation that can affect them."""
    templates = resolve_templates(enrolment)
    since = since or enrolment.start_date
    holidays = await load_holidays_for_templates(db, templates, start=since)
    cancellations = await load_cancellations(db, [t.id for t in templates], start=since)
    return CoverageContext(enrolment, templates, holidays, cancellations)
