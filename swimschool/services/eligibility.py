"""Which enrolments are on the roster for a class occurrence."""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.models import BillingType, Enrolment, EnrolmentClassAssignment, EnrolmentStatus
from swimschool.services.enrolment_context import enrolment_query

ROSTER_STATUSES = (EnrolmentStatus.ACTIVE, EnrolmentStatus.CHANGEOVER)


def enrolment_on_class(enrolment: Enrolment, day: date) -> bool:
    """Status and date range allow the enrolment to attend on ``day``."""
    if enrolment.status not in ROSTER_STATUSES:
        return False
    if enrolment.start_date > day:
        return False
    return enrolment.end_date is None or enrolment.end_date >= day


def is_eligible(enrolment: Enrolment, template, day: date) -> bool:
    """Whether ``enrolment`` occupies a seat in ``template`` on ``day``.

    Weekly enrolments also need the student at the class level and must not
    be past their paid-through date.
    """
    if not enrolment_on_class(enrolment, day):
        return False

    assigned = {a.template_id for a in enrolment.class_assignments}
    if template.id not in assigned and enrolment.template_id != template.id:
        return False

    plan = enrolment.plan
    if plan is not None and plan.billing_type == BillingType.PER_WEEK:
        if enrolment.student.level_id != template.level_id:
            return False
        if enrolment.paid_through_date is not None and day > enrolment.paid_through_date:
            return False
    return True


def filter_eligible_enrolments(
    candidates: Iterable[Enrolment], template, day: date
) -> List[Enrolment]:
    """Eligible enrolments, one per student.

    When a student appears twice the enrolment pointing straight at the
    template wins.
    """
    roster = {}
    for enrolment in candidates:
        if not is_eligible(enrolment, template, day):
            continue
        existing = roster.get(enrolment.student_id)
        is_direct = enrolment.template_id == template.id
        if existing is None or (is_direct and existing.template_id != template.id):
            roster[enrolment.student_id] = enrolment
    return sorted(roster.values(), key=lambda e: (e.student.last_name, e.student.first_name))


async def fetch_enrolment_candidates(
    db: AsyncSession,
    template_ids: Iterable[int],
    range_start: date,
    range_end: Optional[date] = None,
) -> List[Enrolment]:
    """Every enrolment that could be on any of the templates within the range."""
    template_ids = sorted(set(template_ids))
    if not template_ids:
        return []
    range_end = range_end or range_start

    assigned = select(EnrolmentClassAssignment.enrolment_id).where(
        EnrolmentClassAssignment.template_id.in_(template_ids)
    )
    result = await db.execute(
        enrolment_query().where(
            Enrolment.status.in_(ROSTER_STATUSES),
            Enrolment.start_date <= range_end,
            or_(Enrolment.end_date.is_(None), Enrolment.end_date >= range_start),
            or_(Enrolment.template_id.in_(template_ids), Enrolment.id.in_(assigned)),
        )
    )
    return list(result.scalars().unique().all())


async def get_eligible_enrolments_for_occurrence(
    db: AsyncSession, template, day: date
) -> List[Enrolment]:
    candidates = await fetch_enrolment_candidates(db, [template.id], day)
    return filter_eligible_enrolments(candidates, template, day)
