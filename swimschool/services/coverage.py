"""Coverage window resolution.

Pure functions that answer "what does the next payment buy?" for an
enrolment. Weekly plans buy a number of scheduled sessions
(``duration_weeks * sessions_per_week``) and end on the date the last of
them is consumed. Block plans buy a count of classes on an anchor template.
Both skip holiday and cancelled dates, so a holiday pushes the end date out
rather than eating into what was paid for.

Nothing here touches the database. Callers load templates, holidays and
cancellations and pass them in.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from swimschool.core.exceptions import ConfigurationError
from swimschool.models.enrolment_plan import BillingType, EnrolmentType
from swimschool.services.occurrences import (
    coverage_end_for_sessions,
    next_scheduled_day_key,
)
from swimschool.utils.timezone import add_days, max_day_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoverageWindow:
    """Span purchased by one payment.

    ``end_base`` is the same walk with no holidays or cancellations, kept for
    display and audit next to the compensated ``end``.
    """

    start: Optional[date] = None
    end: Optional[date] = None
    end_base: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return self.start is None or self.end is None


@dataclass(frozen=True)
class PayAheadSequence:
    periods: int = 0
    coverage_start: Optional[date] = None
    coverage_end: Optional[date] = None


@dataclass(frozen=True)
class PlanCoverage:
    """Result of resolving the next purchase for a plan."""

    coverage_start: Optional[date]
    coverage_end: Optional[date]
    coverage_end_base: Optional[date]
    periods: int
    credits_purchased: Optional[int]


EMPTY_WINDOW = CoverageWindow()


def _positive_int(value, field: str, plan=None) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        plan_label = f" on plan {plan.id}" if plan is not None and getattr(plan, "id", None) else ""
        raise ConfigurationError(
            f"{field} must be a positive integer{plan_label}",
            details={"field": field, "value": value},
        )
    return value


def weekly_entitlement_sessions(plan) -> int:
    """Sessions bought by one period of a weekly plan."""
    duration_weeks = _positive_int(plan.duration_weeks, "duration_weeks", plan)
    sessions_per_week = _positive_int(plan.sessions_per_week, "sessions_per_week", plan)
    return duration_weeks * sessions_per_week


def resolve_block_length(plan, custom_block_length: Optional[int] = None) -> int:
    """Classes in one block. A custom length may extend the plan, never shorten it."""
    plan_length = _positive_int(plan.block_class_count, "block_class_count", plan)
    if custom_block_length is None:
        return plan_length
    if isinstance(custom_block_length, bool) or not isinstance(custom_block_length, int):
        raise ConfigurationError(
            "Custom block length must be an integer",
            details={"custom_block_length": custom_block_length},
        )
    if custom_block_length < plan_length:
        raise ConfigurationError(
            "Custom block length must be at least the plan block length",
            details={"custom_block_length": custom_block_length, "plan_length": plan_length},
        )
    return custom_block_length


def limit_weekly_templates(templates: Iterable, sessions_per_week: int) -> List:
    """One template per weekday, keeping the lowest weekdays first.

    A plan for fewer sessions than the enrolment has slots only ever uses the
    earliest ``sessions_per_week`` weekdays.
    """
    seen = set()
    unique = []
    for template in templates:
        if template.day_of_week is None or template.day_of_week in seen:
            continue
        seen.add(template.day_of_week)
        unique.append(template)

    unique.sort(key=lambda t: t.day_of_week)
    return unique[:sessions_per_week]


def resolve_coverage_start_day_key(
    *,
    start_date: date,
    end_date: Optional[date],
    paid_through_date: Optional[date],
    templates: Iterable,
    holidays: Iterable = (),
    cancellations: Iterable = (),
    today: Optional[date] = None,
) -> Optional[date]:
    """First scheduled date a new payment would cover.

    The baseline is the day after paid-through (or the enrolment start),
    moved forward to today when today is later, then snapped to the next
    scheduled class.
    """
    baseline = add_days(paid_through_date, 1) if paid_through_date else start_date
    candidate = max_day_key(today, baseline)
    return next_scheduled_day_key(templates, candidate, end_date, holidays, cancellations)


def resolve_weekly_coverage_window(
    *,
    plan,
    start_date: date,
    templates: Iterable,
    end_date: Optional[date] = None,
    paid_through_date: Optional[date] = None,
    holidays: Iterable = (),
    cancellations: Iterable = (),
    today: Optional[date] = None,
) -> CoverageWindow:
    """Coverage bought by one period of a weekly plan."""
    entitlement = weekly_entitlement_sessions(plan)
    effective = limit_weekly_templates(templates, plan.sessions_per_week)
    holidays = list(holidays)
    cancellations = list(cancellations)

    coverage_start = resolve_coverage_start_day_key(
        start_date=start_date,
        end_date=end_date,
        paid_through_date=paid_through_date,
        templates=effective,
        holidays=holidays,
        cancellations=cancellations,
        today=today,
    )
    if coverage_start is None:
        return EMPTY_WINDOW

    coverage_end = coverage_end_for_sessions(
        effective, coverage_start, entitlement, end_date, holidays, cancellations
    )
    coverage_end_base = coverage_end_for_sessions(
        effective, coverage_start, entitlement, end_date
    )
    return CoverageWindow(coverage_start, coverage_end, coverage_end_base)


def resolve_weekly_pay_ahead_sequence(
    *,
    plan,
    start_date: date,
    templates: Iterable,
    quantity: int,
    end_date: Optional[date] = None,
    paid_through_date: Optional[date] = None,
    holidays: Iterable = (),
    cancellations: Iterable = (),
    today: Optional[date] = None,
) -> PayAheadSequence:
    """Chain ``quantity`` weekly periods back to back.

    Each period starts at the next scheduled class after the previous end.
    The walk stops early when the enrolment end date leaves nothing to cover;
    ``periods`` is how many actually fit.
    """
    entitlement = weekly_entitlement_sessions(plan)
    if quantity <= 0:
        return PayAheadSequence()

    effective = limit_weekly_templates(templates, plan.sessions_per_week)
    holidays = list(holidays)
    cancellations = list(cancellations)

    first_start = resolve_coverage_start_day_key(
        start_date=start_date,
        end_date=end_date,
        paid_through_date=paid_through_date,
        templates=effective,
        holidays=holidays,
        cancellations=cancellations,
        today=today,
    )
    if first_start is None:
        return PayAheadSequence()

    current_start = first_start
    coverage_end = None
    periods = 0
    for _ in range(quantity):
        period_end = coverage_end_for_sessions(
            effective, current_start, entitlement, end_date, holidays, cancellations
        )
        if period_end is None:
            break
        coverage_end = period_end
        periods += 1

        next_start = next_scheduled_day_key(
            effective, add_days(period_end, 1), end_date, holidays, cancellations
        )
        if next_start is None:
            break
        current_start = next_start

    if periods == 0:
        return PayAheadSequence()
    return PayAheadSequence(periods, first_start, coverage_end)


def resolve_anchor_template(templates: Iterable):
    """First assigned template that has a weekday."""
    for template in templates:
        if template.day_of_week is not None:
            return template
    return None


def resolve_block_coverage_window(
    *,
    plan,
    start_date: date,
    templates: Iterable,
    end_date: Optional[date] = None,
    paid_through_date: Optional[date] = None,
    holidays: Iterable = (),
    cancellations: Iterable = (),
    today: Optional[date] = None,
    quantity: int = 1,
    custom_block_length: Optional[int] = None,
) -> CoverageWindow:
    """Dates spanned by ``quantity`` blocks on the anchor template."""
    block_length = resolve_block_length(plan, custom_block_length)
    _positive_int(quantity, "quantity")
    anchor = resolve_anchor_template(templates)
    if anchor is None:
        return EMPTY_WINDOW

    holidays = list(holidays)
    cancellations = list(cancellations)
    sessions = block_length * quantity

    coverage_start = resolve_coverage_start_day_key(
        start_date=start_date,
        end_date=end_date,
        paid_through_date=paid_through_date,
        templates=[anchor],
        holidays=holidays,
        cancellations=cancellations,
        today=today,
    )
    if coverage_start is None:
        return EMPTY_WINDOW

    coverage_end = coverage_end_for_sessions(
        [anchor], coverage_start, sessions, end_date, holidays, cancellations
    )
    coverage_end_base = coverage_end_for_sessions([anchor], coverage_start, sessions, end_date)
    return CoverageWindow(coverage_start, coverage_end, coverage_end_base)


def resolve_credits_purchased(
    plan,
    quantity: int = 1,
    recorded: Optional[int] = None,
    custom_block_length: Optional[int] = None,
) -> int:
    """Credits granted by an invoice for a per-class plan.

    Never lower than what the invoice already recorded.
    """
    computed = resolve_block_length(plan, custom_block_length) * _positive_int(
        quantity, "quantity"
    )
    if recorded is not None and recorded > computed:
        return recorded
    return computed


def resolve_coverage_for_plan(
    *,
    plan,
    enrolment,
    templates: Iterable,
    holidays: Iterable = (),
    cancellations: Iterable = (),
    today: Optional[date] = None,
    quantity: int = 1,
    custom_block_length: Optional[int] = None,
    recorded_credits: Optional[int] = None,
) -> PlanCoverage:
    """Resolve what the next purchase of ``plan`` covers for ``enrolment``.

    ``enrolment`` only needs ``start_date``, ``end_date``,
    ``paid_through_date`` and ``paid_through_date_computed``.
    """
    _positive_int(quantity, "quantity")
    templates = list(templates)

    if plan.billing_type == BillingType.PER_WEEK:
        sequence = resolve_weekly_pay_ahead_sequence(
            plan=plan,
            start_date=enrolment.start_date,
            end_date=enrolment.end_date,
            paid_through_date=enrolment.paid_through_date,
            templates=templates,
            quantity=quantity,
            holidays=holidays,
            cancellations=cancellations,
            today=today,
        )
        base = None
        if sequence.coverage_start is not None:
            base = coverage_end_for_sessions(
                limit_weekly_templates(templates, plan.sessions_per_week),
                sequence.coverage_start,
                weekly_entitlement_sessions(plan) * sequence.periods,
                enrolment.end_date,
            )
        return PlanCoverage(
            coverage_start=sequence.coverage_start,
            coverage_end=sequence.coverage_end,
            coverage_end_base=base,
            periods=sequence.periods,
            credits_purchased=None,
        )

    if plan.billing_type != BillingType.PER_CLASS:
        raise ConfigurationError(f"Unsupported billing type {plan.billing_type}")

    credits = resolve_credits_purchased(plan, quantity, recorded_credits, custom_block_length)
    if plan.enrolment_type != EnrolmentType.BLOCK:
        return PlanCoverage(None, None, None, quantity, credits)

    window = resolve_block_coverage_window(
        plan=plan,
        start_date=enrolment.start_date,
        end_date=enrolment.end_date,
        paid_through_date=enrolment.paid_through_date or enrolment.paid_through_date_computed,
        templates=templates,
        holidays=holidays,
        cancellations=cancellations,
        today=today,
        quantity=quantity,
        custom_block_length=custom_block_length,
    )
    logger.debug(
        f"Block coverage for enrolment {getattr(enrolment, 'id', None)}: "
        f"{window.start}..{window.end} credits={credits}"
    )
    return PlanCoverage(window.start, window.end, window.end_base, quantity, credits)
