"""Billing status snapshot for an enrolment."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.models import BillingType, EnrolmentType
from swimschool.services.coverage import limit_weekly_templates
from swimschool.services.credit_ledger import CreditLedger
from swimschool.services.enrolment_context import (
    CoverageContext,
    load_coverage_context,
    load_enrolment,
)
from swimschool.services.occurrences import coverage_end_for_sessions, next_scheduled_day_key
from swimschool.utils.timezone import add_days, max_day_key, today_day_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingSnapshot:
    enrolment_id: int
    paid_through_date: Optional[date]
    next_due_date: Optional[date]
    credits_remaining: Optional[int]


def _next_due_after(context: CoverageContext, paid_through: Optional[date], templates) -> Optional[date]:
    enrolment = context.enrolment
    start = add_days(paid_through, 1) if paid_through else enrolment.start_date
    return next_scheduled_day_key(
        templates, start, enrolment.end_date, context.holidays, context.cancellations
    )


def compute_billing_snapshot(
    context: CoverageContext, credits: Optional[int], today: Optional[date] = None
) -> BillingSnapshot:
    """Derive next due date (and paid-through for open per-class plans)."""
    enrolment = context.enrolment
    plan = enrolment.plan
    today = today or today_day_key()

    if plan is None:
        return BillingSnapshot(enrolment.id, enrolment.paid_through_date, None, credits)

    if plan.billing_type == BillingType.PER_WEEK:
        templates = context.templates
        if plan.sessions_per_week:
            templates = limit_weekly_templates(templates, plan.sessions_per_week)
        return BillingSnapshot(
            enrolment.id,
            enrolment.paid_through_date,
            _next_due_after(context, enrolment.paid_through_date, templates),
            None,
        )

    if plan.enrolment_type == EnrolmentType.BLOCK:
        return BillingSnapshot(
            enrolment.id,
            enrolment.paid_through_date,
            _next_due_after(context, enrolment.paid_through_date, context.templates),
            credits,
        )

    # Open per-class plans are paid through the day the remaining credits run out
    paid_through = None
    if credits and credits > 0:
        paid_through = coverage_end_for_sessions(
            context.templates,
            max_day_key(today, enrolment.start_date),
            credits,
            enrolment.end_date,
            context.holidays,
            context.cancellations,
        )
    next_due = _next_due_after(context, paid_through, context.templates)
    if paid_through is None:
        next_due = next_scheduled_day_key(
            context.templates,
            max_day_key(today, enrolment.start_date),
            enrolment.end_date,
            context.holidays,
            context.cancellations,
        )
    return BillingSnapshot(enrolment.id, paid_through, next_due, credits)


async def refresh_billing_status(
    db: AsyncSession, enrolment_id: int, today: Optional[date] = None
) -> BillingSnapshot:
    """Recompute and store the billing snapshot. Flushes, never commits."""
    enrolment = await load_enrolment(db, enrolment_id)
    context = await load_coverage_context(db, enrolment)

    credits = None
    if enrolment.plan is not None and enrolment.plan.billing_type == BillingType.PER_CLASS:
        credits = await CreditLedger(db).refresh_cached_balance(enrolment.id)

    snapshot = compute_billing_snapshot(context, credits, today)
    enrolment.next_due_date_computed = snapshot.next_due_date
    if (
        enrolment.plan is not None
        and enrolment.plan.billing_type == BillingType.PER_CLASS
        and enrolment.plan.enrolment_type == EnrolmentType.CLASS
    ):
        enrolment.paid_through_date_computed = snapshot.paid_through_date
    await db.flush()

    logger.debug(
        f"Billing status for enrolment {enrolment_id}: "
        f"paid_through={snapshot.paid_through_date} next_due={snapshot.next_due_date} "
        f"credits={snapshot.credits_remaining}"
    )
    return snapshot
