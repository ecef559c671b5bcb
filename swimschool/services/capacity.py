"""Class capacity and makeup seat availability.

Free makeup seats for an occurrence are::

    capacity - (scheduled - excused) - booked_makeups

where ``scheduled`` is the eligible roster, ``excused`` the part of it marked
EXCUSED (or covered by an approved away period) and ``booked_makeups`` the
confirmed makeup bookings into that occurrence. Inactive classes, classes
without a level and dates outside the class schedule report no seats at all.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.models import (
    Attendance,
    AttendanceStatus,
    AwayPeriod,
    AwayPeriodStatus,
    ClassTemplate,
    MakeupBooking,
    MakeupBookingStatus,
)
from swimschool.services.eligibility import (
    fetch_enrolment_candidates,
    filter_eligible_enrolments,
)
from swimschool.services.enrolment_context import load_cancellations
from swimschool.services.holiday_scope import holiday_excludes, load_holidays_for_templates
from swimschool.services.occurrences import cancellation_keys, is_scheduled_on, occurrences

logger = logging.getLogger(__name__)

OccurrenceKey = Tuple[int, date]


@dataclass(frozen=True)
class CapacityExceededDetails:
    template_id: int
    template_name: Optional[str]
    day_of_week: Optional[int]
    start_time: Optional[time]
    occurrence_date: date
    capacity: int
    current_count: int
    projected_count: int


@dataclass(frozen=True)
class CapacitySnapshot:
    """Seat usage for one occurrence. Returned, never raised."""

    template: ClassTemplate
    occurrence_date: date
    capacity: Optional[int]
    current_count: int
    projected_count: int

    @property
    def exceeded(self) -> bool:
        return self.capacity is not None and self.projected_count > self.capacity

    @property
    def details(self) -> Optional[CapacityExceededDetails]:
        if not self.exceeded:
            return None
        return CapacityExceededDetails(
            template_id=self.template.id,
            template_name=self.template.name,
            day_of_week=self.template.day_of_week,
            start_time=self.template.start_time,
            occurrence_date=self.occurrence_date,
            capacity=self.capacity,
            current_count=self.current_count,
            projected_count=self.projected_count,
        )


@dataclass
class MakeupAvailability:
    template_id: int
    session_date: date
    capacity: int
    scheduled_count: int
    excused_scheduled_count: int
    booked_makeups_count: int
    available: int
    scheduled_student_ids: List[int] = field(default_factory=list)
    cancelled: bool = False


def calculate_makeup_session_availability(
    capacity: int, scheduled_count: int, excused_scheduled_count: int, booked_makeups_count: int
) -> int:
    return capacity - (scheduled_count - excused_scheduled_count) - booked_makeups_count


async def _booked_makeup_counts(
    db: AsyncSession, template_ids: List[int], start: date, end: date
) -> Dict[OccurrenceKey, int]:
    result = await db.execute(
        select(
            MakeupBooking.target_class_id,
            MakeupBooking.target_session_date,
            func.count(MakeupBooking.id),
        )
        .where(
            MakeupBooking.target_class_id.in_(template_ids),
            MakeupBooking.target_session_date >= start,
            MakeupBooking.target_session_date <= end,
            MakeupBooking.status == MakeupBookingStatus.BOOKED,
        )
        .group_by(MakeupBooking.target_class_id, MakeupBooking.target_session_date)
    )
    return {(row[0], row[1]): row[2] for row in result.all()}


async def get_capacity_snapshot(
    db: AsyncSession, template: ClassTemplate, day: date, additional: int = 1
) -> CapacitySnapshot:
    """Current and projected headcount for one occurrence."""
    candidates = await fetch_enrolment_candidates(db, [template.id], day)
    roster = filter_eligible_enrolments(candidates, template, day)
    booked = await _booked_makeup_counts(db, [template.id], day, day)

    current = len(roster) + booked.get((template.id, day), 0)
    return CapacitySnapshot(
        template=template,
        occurrence_date=day,
        capacity=template.capacity,
        current_count=current,
        projected_count=current + additional,
    )


async def check_capacity_for_template_range(
    db: AsyncSession,
    template: ClassTemplate,
    start: date,
    end: date,
    additional: int = 1,
) -> Optional[CapacityExceededDetails]:
    """First occurrence in the range that ``additional`` students would overfill."""
    if template.capacity is None:
        return None

    holidays = await load_holidays_for_templates(db, [template], start, end)
    cancellations = await load_cancellations(db, [template.id], start, end)
    for day in occurrences(template, start, end, holidays, cancellations):
        snapshot = await get_capacity_snapshot(db, template, day, additional)
        if snapshot.exceeded:
            logger.info(
                f"Capacity exceeded for template {template.id} on {day}: "
                f"{snapshot.projected_count}/{snapshot.capacity}"
            )
            return snapshot.details
    return None


async def compute_makeup_availabilities_for_occurrences(
    db: AsyncSession, occurrence_keys: Iterable[OccurrenceKey]
) -> Dict[OccurrenceKey, MakeupAvailability]:
    """Makeup availability for many occurrences with a fixed number of queries."""
    keys = sorted(set(occurrence_keys))
    if not keys:
        return {}

    template_ids = sorted({template_id for template_id, _ in keys})
    range_start = min(day for _, day in keys)
    range_end = max(day for _, day in keys)

    templates_result = await db.execute(
        select(ClassTemplate).where(ClassTemplate.id.in_(template_ids))
    )
    templates = {t.id: t for t in templates_result.scalars().all()}

    candidates = await fetch_enrolment_candidates(db, template_ids, range_start, range_end)
    holidays = await load_holidays_for_templates(
        db, list(templates.values()), range_start, range_end
    )
    cancelled = cancellation_keys(
        await load_cancellations(db, template_ids, range_start, range_end)
    )

    excused_result = await db.execute(
        select(Attendance.template_id, Attendance.session_date, Attendance.student_id).where(
            Attendance.template_id.in_(template_ids),
            Attendance.session_date >= range_start,
            Attendance.session_date <= range_end,
            Attendance.status == AttendanceStatus.EXCUSED,
        )
    )
    excused_by_session: Dict[OccurrenceKey, set] = {}
    for template_id, session_date, student_id in excused_result.all():
        excused_by_session.setdefault((template_id, session_date), set()).add(student_id)

    student_ids = sorted({c.student_id for c in candidates})
    away_by_student: Dict[int, List[AwayPeriod]] = {}
    if student_ids:
        away_result = await db.execute(
            select(AwayPeriod).where(
                AwayPeriod.student_id.in_(student_ids),
                AwayPeriod.status == AwayPeriodStatus.APPROVED,
                AwayPeriod.start_date <= range_end,
                AwayPeriod.end_date >= range_start,
            )
        )
        for away in away_result.scalars().all():
            away_by_student.setdefault(away.student_id, []).append(away)

    booked = await _booked_makeup_counts(db, template_ids, range_start, range_end)

    availabilities: Dict[OccurrenceKey, MakeupAvailability] = {}
    for key in keys:
        template_id, day = key
        template = templates.get(template_id)
        booked_count = booked.get(key, 0)

        scheduled = is_scheduled_on(template, day)
        removed = scheduled and (key in cancelled or holiday_excludes(holidays, template, day))
        if not scheduled or removed or template.level_id is None:
            availabilities[key] = MakeupAvailability(
                template_id=template_id,
                session_date=day,
                capacity=0,
                scheduled_count=0,
                excused_scheduled_count=0,
                booked_makeups_count=booked_count,
                available=0,
                cancelled=removed,
            )
            continue

        roster = filter_eligible_enrolments(candidates, template, day)
        scheduled_ids = [e.student_id for e in roster]

        # Away periods free a seat before attendance is recorded
        excused = set(excused_by_session.get(key, set()))
        for student_id in scheduled_ids:
            if any(a.covers(day) for a in away_by_student.get(student_id, [])):
                excused.add(student_id)
        excused_count = len(excused.intersection(scheduled_ids))

        capacity = template.capacity if template.capacity is not None else len(roster)
        available = calculate_makeup_session_availability(
            capacity, len(roster), excused_count, booked_count
        )
        availabilities[key] = MakeupAvailability(
            template_id=template_id,
            session_date=day,
            capacity=capacity,
            scheduled_count=len(roster),
            excused_scheduled_count=excused_count,
            booked_makeups_count=booked_count,
            available=max(available, 0),
            scheduled_student_ids=scheduled_ids,
        )

    logger.debug(f"Computed makeup availability for {len(keys)} occurrences")
    return availabilities
