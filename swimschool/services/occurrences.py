"""Scheduled class occurrence enumeration.

Expands weekly class templates into concrete day keys, dropping dates covered
by an in-scope holiday or by a one-off cancellation of that template.
"""

import heapq
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Iterator, Optional, Set, Tuple

from swimschool.services.holiday_scope import holiday_excludes
from swimschool.utils.timezone import add_days, day_of_week

logger = logging.getLogger(__name__)

# Upper bound for open-ended walks (about ten years)
MAX_HORIZON_DAYS = 3660


@dataclass(frozen=True)
class Occurrence:
    """One dated instance of a class template."""

    day: date
    template_id: int


def cancellation_keys(cancellations: Iterable) -> Set[Tuple[int, date]]:
    """Normalise cancellations to ``(template_id, day)`` pairs.

    Accepts ClassCancellation rows or ready-made tuples.
    """
    keys = set()
    for item in cancellations or ():
        if isinstance(item, tuple):
            keys.add((item[0], item[1]))
        else:
            keys.add((item.template_id, item.date))
    return keys


def _bounded_range(template, range_start: date, range_end: Optional[date]):
    start = range_start
    if template.start_date is not None and template.start_date > start:
        start = template.start_date

    end = add_days(start, MAX_HORIZON_DAYS)
    if range_end is not None and range_end < end:
        end = range_end
    if template.end_date is not None and template.end_date < end:
        end = template.end_date
    return start, end


def occurrences(
    template,
    range_start: date,
    range_end: Optional[date],
    holidays: Iterable = (),
    cancellations: Iterable = (),
) -> Iterator[date]:
    """Yield the template's scheduled dates within ``[range_start, range_end]``.

    ``range_end=None`` walks up to ``MAX_HORIZON_DAYS``. Templates without a
    weekday yield nothing. The generator is finite and can be re-created
    cheaply, so callers may materialise it.
    """
    if template.day_of_week is None:
        return

    holidays = list(holidays or ())
    cancelled = cancellation_keys(cancellations)
    start, end = _bounded_range(template, range_start, range_end)

    target = template.day_of_week % 7
    cursor = add_days(start, (target - day_of_week(start)) % 7)
    while cursor <= end:
        if (template.id, cursor) not in cancelled and not holiday_excludes(
            holidays, template, cursor
        ):
            yield cursor
        cursor = add_days(cursor, 7)


def _tagged(template, range_start, range_end, holidays, cancellations) -> Iterator[Occurrence]:
    for day in occurrences(template, range_start, range_end, holidays, cancellations):
        yield Occurrence(day=day, template_id=template.id)


def merged_occurrences(
    templates: Iterable,
    range_start: date,
    range_end: Optional[date],
    holidays: Iterable = (),
    cancellations: Iterable = (),
) -> Iterator[Occurrence]:
    """Occurrences of several templates in date order.

    Two templates on the same day are two sessions.
    """
    holidays = list(holidays or ())
    cancellations = cancellation_keys(cancellations)
    streams = [
        _tagged(template, range_start, range_end, holidays, cancellations)
        for template in templates
    ]
    return heapq.merge(*streams, key=lambda o: (o.day, o.template_id or 0))


def next_scheduled_day_key(
    templates: Iterable,
    start: date,
    end: Optional[date] = None,
    holidays: Iterable = (),
    cancellations: Iterable = (),
) -> Optional[date]:
    """First scheduled date on or after ``start``, or None."""
    for occurrence in merged_occurrences(templates, start, end, holidays, cancellations):
        return occurrence.day
    return None


def coverage_end_for_sessions(
    templates: Iterable,
    start: date,
    sessions: int,
    end: Optional[date] = None,
    holidays: Iterable = (),
    cancellations: Iterable = (),
) -> Optional[date]:
    """Date of the last session consumed when spending ``sessions`` from ``start``.

    If ``end`` cuts the walk short, the last session before it is returned;
    None when nothing at all is scheduled.
    """
    if sessions <= 0:
        return None

    remaining = sessions
    last_covered = None
    for occurrence in merged_occurrences(templates, start, end, holidays, cancellations):
        last_covered = occurrence.day
        remaining -= 1
        if remaining <= 0:
            break
    return last_covered


def count_scheduled_sessions(
    templates: Iterable,
    start: date,
    end: date,
    holidays: Iterable = (),
    cancellations: Iterable = (),
) -> int:
    if end < start:
        return 0
    return sum(1 for _ in merged_occurrences(templates, start, end, holidays, cancellations))


def count_holiday_occurrences(
    start: date,
    end: date,
    templates: Iterable,
    holidays: Iterable,
) -> int:
    """Number of scheduled sessions in ``[start, end]`` removed by holidays.

    A session covered by several overlapping holidays counts once.
    """
    templates = list(templates)
    holidays = list(holidays)
    if end < start or not holidays:
        return 0

    total = 0
    for template in templates:
        for day in occurrences(template, start, end):
            if holiday_excludes(holidays, template, day):
                total += 1
    return total


def is_scheduled_on(template, day: date) -> bool:
    """Active template whose weekday and own date range include ``day``.

    Holidays and cancellations are not considered.
    """
    if template is None or not template.active:
        return False
    return next(occurrences(template, day, day), None) is not None
