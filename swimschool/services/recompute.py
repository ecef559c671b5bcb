"""Recomputing enrolment coverage after calendar changes.

Coverage is re-derived from the invoices already applied to an enrolment,
walked again against the current holidays and cancellations. The result only
ever moves ``paid_through_date`` forward, so running a recompute twice (or
after a partial failure) leaves the same state as running it once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from swimschool.core.database import AsyncSessionLocal
from swimschool.core.settings import settings
from swimschool.models import (
    BillingType,
    ClassTemplate,
    CoverageAuditReason,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentStatus,
    Invoice,
    InvoiceStatus,
)
from swimschool.services.billing_status import refresh_billing_status
from swimschool.services.coverage import (
    limit_weekly_templates,
    resolve_anchor_template,
    weekly_entitlement_sessions,
)
from swimschool.services.coverage_audit import log_coverage_change
from swimschool.services.enrolment_context import (
    CoverageContext,
    load_coverage_context,
    load_enrolment,
)
from swimschool.services.entitlements import resolve_invoice_quantity
from swimschool.services.occurrences import coverage_end_for_sessions, next_scheduled_day_key
from swimschool.utils.timezone import add_days, max_day_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangedRange:
    """A holiday or cancellation range that changed.

    ``template_id``/``level_id`` narrow the affected classes the same way a
    holiday scope does.
    """

    start: date
    end: date
    template_id: Optional[int] = None
    level_id: Optional[int] = None

    @property
    def weekdays(self) -> set:
        span = (self.end - self.start).days + 1
        if span >= 7:
            return set(range(7))
        return {add_days(self.start, i).weekday() for i in range(max(span, 0))}


@dataclass
class SweepResult:
    processed: int = 0
    updated: int = 0
    batches: int = 0
    failed: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


async def _applied_invoices(
    db: AsyncSession, enrolment_id: int, rebased_at: Optional[datetime] = None
) -> List[Invoice]:
    """Applied invoices with a stamped window, after the last rebase if any."""
    query = (
        select(Invoice)
        .options(selectinload(Invoice.line_items))
        .where(
            Invoice.enrolment_id == enrolment_id,
            Invoice.status == InvoiceStatus.PAID,
            Invoice.entitlements_applied_at.is_not(None),
            Invoice.coverage_start.is_not(None),
        )
        .order_by(Invoice.coverage_start, Invoice.paid_at, Invoice.id)
    )
    if rebased_at is not None:
        query = query.where(Invoice.entitlements_applied_at >= rebased_at)
    result = await db.execute(query)
    return list(result.scalars().all())


def _chain(
    invoices: Iterable[Invoice],
    sessions_for: Callable[[Invoice], int],
    templates: list,
    end_date: Optional[date],
    holidays: list,
    cancellations: list,
) -> Optional[date]:
    """Walk each invoice's sessions back to back from its stamped start."""
    chained_end = None
    for invoice in invoices:
        candidate = max_day_key(
            invoice.coverage_start, add_days(chained_end, 1) if chained_end else None
        )
        start = next_scheduled_day_key(templates, candidate, end_date, holidays, cancellations)
        if start is None:
            break
        end = coverage_end_for_sessions(
            templates, start, sessions_for(invoice), end_date, holidays, cancellations
        )
        chained_end = max_day_key(chained_end, end)
    return chained_end


def derive_paid_through(context: CoverageContext, invoices: List[Invoice]):
    """Compensated and nominal paid-through implied by the applied invoices."""
    enrolment = context.enrolment
    plan = enrolment.plan

    if plan.billing_type == BillingType.PER_WEEK:
        templates = limit_weekly_templates(context.templates, plan.sessions_per_week)
        per_period = weekly_entitlement_sessions(plan)

        def sessions_for(invoice):
            return per_period * resolve_invoice_quantity(invoice)

    else:
        anchor = resolve_anchor_template(context.templates)
        templates = [anchor] if anchor is not None else []

        def sessions_for(invoice):
            return invoice.credits_purchased or (
                plan.block_class_count * resolve_invoice_quantity(invoice)
            )

    compensated = _chain(
        invoices, sessions_for, templates, enrolment.end_date,
        context.holidays, context.cancellations,
    )
    nominal = _chain(invoices, sessions_for, templates, enrolment.end_date, [], [])
    return compensated, nominal


async def recompute_enrolment(
    db: AsyncSession,
    enrolment_id: int,
    reason: CoverageAuditReason,
    actor: Optional[str] = None,
) -> bool:
    """Re-derive one enrolment's coverage. Flushes, never commits.

    Returns True when the stored paid-through state changed.
    """
    enrolment = await load_enrolment(db, enrolment_id)
    plan = enrolment.plan
    if enrolment.status != EnrolmentStatus.ACTIVE or plan is None:
        return False

    context = await load_coverage_context(db, enrolment)
    if not context.templates:
        return False

    previous_paid_through = enrolment.paid_through_date
    previous_computed = enrolment.paid_through_date_computed
    previous_credits = enrolment.credits_balance_cached

    if plan.billing_type == BillingType.PER_WEEK or plan.is_block:
        invoices = await _applied_invoices(db, enrolment.id, enrolment.coverage_rebased_at)
        if invoices:
            compensated, nominal = derive_paid_through(context, invoices)
            enrolment.paid_through_date = max_day_key(previous_paid_through, compensated)
            if nominal is not None:
                enrolment.paid_through_date_computed = nominal

    snapshot = await refresh_billing_status(db, enrolment.id)
    await log_coverage_change(
        db,
        enrolment.id,
        reason,
        previous_paid_through,
        enrolment.paid_through_date,
        previous_credits,
        snapshot.credits_remaining,
        actor=actor,
    )
    return (
        previous_paid_through != enrolment.paid_through_date
        or previous_computed != enrolment.paid_through_date_computed
        or previous_credits != snapshot.credits_remaining
    )


async def recompute_enrolment_coverage(
    db: AsyncSession,
    enrolment_id: int,
    reason: CoverageAuditReason = CoverageAuditReason.MANUAL,
    actor: Optional[str] = None,
) -> Enrolment:
    """Recompute one enrolment in its own transaction."""
    try:
        changed = await recompute_enrolment(db, enrolment_id, reason, actor)
        await db.commit()
        if changed:
            logger.info(f"Recomputed coverage for enrolment {enrolment_id} ({reason.value})")
        return await load_enrolment(db, enrolment_id)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error recomputing enrolment {enrolment_id}: {e}")
        raise


async def find_affected_enrolment_ids(
    db: AsyncSession, ranges: Iterable[ChangedRange]
) -> List[int]:
    """ACTIVE enrolments with a class on an affected weekday overlapping a range."""
    ranges = list(ranges)
    if not ranges:
        return []

    template_clauses = []
    for changed in ranges:
        clause = ClassTemplate.day_of_week.in_(sorted(changed.weekdays))
        if changed.template_id is not None:
            clause = and_(clause, ClassTemplate.id == changed.template_id)
        elif changed.level_id is not None:
            clause = and_(clause, ClassTemplate.level_id == changed.level_id)
        template_clauses.append(clause)

    affected_templates = select(ClassTemplate.id).where(or_(*template_clauses))
    assigned = select(EnrolmentClassAssignment.enrolment_id).where(
        EnrolmentClassAssignment.template_id.in_(affected_templates)
    )
    overlaps = [
        and_(
            Enrolment.start_date <= changed.end,
            or_(Enrolment.end_date.is_(None), Enrolment.end_date >= changed.start),
        )
        for changed in ranges
    ]

    result = await db.execute(
        select(Enrolment.id)
        .where(
            Enrolment.status == EnrolmentStatus.ACTIVE,
            Enrolment.plan_id.is_not(None),
            or_(Enrolment.template_id.in_(affected_templates), Enrolment.id.in_(assigned)),
            or_(*overlaps),
        )
        .order_by(Enrolment.id)
    )
    return list(result.scalars().all())


async def recompute_enrolments(
    enrolment_ids: List[int],
    reason: CoverageAuditReason,
    session_factory=None,
    actor: Optional[str] = None,
) -> SweepResult:
    """Recompute enrolments in batches, one transaction per batch.

    At most ``settings.recompute_concurrency`` batches run at once. A failed
    batch is rolled back and reported; the others still commit.
    """
    session_factory = session_factory or AsyncSessionLocal
    batch_size = max(settings.recompute_batch_size, 1)
    batches = [
        enrolment_ids[i:i + batch_size] for i in range(0, len(enrolment_ids), batch_size)
    ]
    semaphore = asyncio.Semaphore(max(settings.recompute_concurrency, 1))
    result = SweepResult(batches=len(batches))

    async def run_batch(batch: List[int]) -> None:
        async with semaphore:
            async with session_factory() as db:
                try:
                    updated = 0
                    for enrolment_id in batch:
                        if await recompute_enrolment(db, enrolment_id, reason, actor):
                            updated += 1
                    await db.commit()
                    result.processed += len(batch)
                    result.updated += updated
                except Exception:
                    await db.rollback()
                    logger.exception(f"❌ Recompute batch failed for enrolments {batch}")
                    result.failed.extend(batch)

    await asyncio.gather(*(run_batch(batch) for batch in batches))
    logger.info(
        f"Recompute ({reason.value}): {result.processed} processed, "
        f"{result.updated} updated, {len(result.failed)} failed in {result.batches} batches"
    )
    return result


async def recompute_holiday_enrolments(
    ranges: Iterable[ChangedRange],
    reason: CoverageAuditReason = CoverageAuditReason.HOLIDAY_ADDED,
    session_factory=None,
    actor: Optional[str] = None,
) -> SweepResult:
    """Recompute every enrolment a holiday or cancellation change can affect."""
    ranges = list(ranges)
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        enrolment_ids = await find_affected_enrolment_ids(db, ranges)

    logger.info(
        f"🔄 {len(enrolment_ids)} enrolments affected by "
        f"{[(r.start.isoformat(), r.end.isoformat()) for r in ranges]}"
    )
    return await recompute_enrolments(enrolment_ids, reason, session_factory, actor)
