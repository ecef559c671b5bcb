"""Applying paid invoices to enrolment coverage.

``apply_paid_invoice_to_enrolment`` is the single entry point payment
webhooks call once an invoice has flipped to PAID. It is safe to call any
number of times: ``Invoice.entitlements_applied_at`` records that the invoice
has been applied and later calls return the invoice untouched.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from swimschool.core.exceptions import ConfigurationError, NotFoundError, PlanMismatchError
from swimschool.models import (
    BillingType,
    CoverageAuditReason,
    Enrolment,
    Invoice,
    InvoiceLineItemKind,
    InvoiceStatus,
)
from swimschool.services.billing_status import refresh_billing_status
from swimschool.services.coverage import (
    limit_weekly_templates,
    resolve_block_coverage_window,
    resolve_coverage_start_day_key,
    resolve_credits_purchased,
    weekly_entitlement_sessions,
)
from swimschool.services.coverage_audit import log_coverage_change
from swimschool.services.credit_ledger import CreditLedger
from swimschool.services.enrolment_context import (
    CoverageContext,
    load_coverage_context,
    load_enrolment,
)
from swimschool.services.occurrences import coverage_end_for_sessions
from swimschool.utils.timezone import add_days, max_day_key, now_utc, to_day_key

logger = logging.getLogger(__name__)


def enrolment_line_items(invoice: Invoice) -> list:
    return [li for li in invoice.line_items if li.kind == InvoiceLineItemKind.ENROLMENT]


def resolve_invoice_quantity(invoice: Invoice) -> int:
    """Periods or blocks bought: summed ENROLMENT line quantities, at least 1."""
    return sum((li.quantity or 1) for li in enrolment_line_items(invoice)) or 1


def assert_plan_matches(invoice: Invoice, enrolment: Enrolment, templates: list) -> None:
    """Refuse to extend coverage for an enrolment moved off the invoiced plan."""
    plan = enrolment.plan
    invoiced_plan_ids = {invoice.plan_id} | {li.plan_id for li in enrolment_line_items(invoice)}
    invoiced_plan_ids.discard(None)
    if invoiced_plan_ids and invoiced_plan_ids != {enrolment.plan_id}:
        raise PlanMismatchError(
            f"Invoice {invoice.id} was issued for plan(s) {sorted(invoiced_plan_ids)} "
            f"but enrolment {enrolment.id} is on plan {enrolment.plan_id}",
            details={"invoice_id": invoice.id, "enrolment_id": enrolment.id},
        )

    if plan.level_id is None:
        return
    for template in templates:
        if template.level_id is not None and template.level_id != plan.level_id:
            raise PlanMismatchError(
                f"Template {template.id} level {template.level_id} does not match "
                f"plan {plan.id} level {plan.level_id}",
                details={"template_id": template.id, "plan_id": plan.id},
            )


async def _load_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    result = await db.execute(
        select(Invoice)
        .options(selectinload(Invoice.line_items))
        .where(Invoice.id == invoice_id)
        .with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _apply_weekly(invoice: Invoice, context: CoverageContext, quantity: int) -> None:
    enrolment = context.enrolment
    plan = enrolment.plan
    if invoice.coverage_end is None:
        raise ConfigurationError(
            f"Weekly invoice {invoice.id} has no coverage end",
            details={"invoice_id": invoice.id},
        )

    sessions = weekly_entitlement_sessions(plan) * quantity
    templates = limit_weekly_templates(context.templates, plan.sessions_per_week)
    current = enrolment.paid_through_date

    if invoice.coverage_start is None:
        # Unstamped invoices continue from the current paid-through
        invoice.coverage_start = resolve_coverage_start_day_key(
            start_date=enrolment.start_date,
            end_date=enrolment.end_date,
            paid_through_date=current,
            templates=templates,
            holidays=context.holidays,
            cancellations=context.cancellations,
        )

    if current is not None and invoice.coverage_end < current:
        logger.warning(
            f"Invoice {invoice.id} coverage end {invoice.coverage_end} is before "
            f"enrolment {enrolment.id} paid-through {current}; keeping {current}"
        )
    enrolment.paid_through_date = max_day_key(current, invoice.coverage_end)

    if invoice.coverage_start is None:
        return

    # Nominal end without holiday compensation
    base_end = coverage_end_for_sessions(
        templates, invoice.coverage_start, sessions, enrolment.end_date
    )
    enrolment.paid_through_date_computed = max_day_key(
        enrolment.paid_through_date_computed, base_end
    )


async def _apply_per_class(
    db: AsyncSession,
    invoice: Invoice,
    context: CoverageContext,
    quantity: int,
    today: Optional[date],
) -> None:
    enrolment = context.enrolment
    plan = enrolment.plan

    credits = resolve_credits_purchased(plan, quantity, invoice.credits_purchased)
    invoice.credits_purchased = credits
    paid_on = to_day_key(invoice.paid_at) if invoice.paid_at else to_day_key(now_utc())
    await CreditLedger(db).record_purchase(enrolment.id, credits, paid_on, invoice.id)

    if not plan.is_block:
        return

    custom_length = None
    if credits > plan.block_class_count * quantity:
        custom_length = credits // quantity

    if invoice.coverage_start is not None:
        # Issued with a window: walk from the stamped start
        paid_through = add_days(invoice.coverage_start, -1)
        today = None
    else:
        paid_through = enrolment.paid_through_date or enrolment.paid_through_date_computed

    window = resolve_block_coverage_window(
        plan=plan,
        start_date=enrolment.start_date,
        end_date=enrolment.end_date,
        paid_through_date=paid_through,
        templates=context.templates,
        holidays=context.holidays,
        cancellations=context.cancellations,
        today=today,
        quantity=quantity,
        custom_block_length=custom_length,
    )
    if window.end is None:
        logger.warning(
            f"Block invoice {invoice.id} bought no dates for enrolment {enrolment.id}"
        )
        return

    if invoice.coverage_start is None:
        invoice.coverage_start = window.start
    if invoice.coverage_end is None:
        invoice.coverage_end = window.end
    enrolment.paid_through_date = max_day_key(enrolment.paid_through_date, window.end)
    enrolment.paid_through_date_computed = max_day_key(
        enrolment.paid_through_date_computed, window.end_base
    )


async def apply_paid_invoice_to_enrolment(
    db: AsyncSession,
    invoice_id: int,
    today: Optional[date] = None,
    actor: Optional[str] = None,
) -> Invoice:
    """Apply a PAID invoice to its enrolment exactly once.

    Commits on success. Any failure rolls the whole application back.
    """
    try:
        invoice = await _load_invoice(db, invoice_id)

        if invoice.status != InvoiceStatus.PAID:
            logger.info(f"Invoice {invoice_id} is {invoice.status.value}; nothing to apply")
            return invoice
        if invoice.entitlements_applied_at is not None:
            logger.info(f"Invoice {invoice_id} already applied at {invoice.entitlements_applied_at}")
            return invoice

        lines = enrolment_line_items(invoice)
        if not lines:
            logger.info(f"Invoice {invoice_id} has no enrolment lines")
            return invoice

        enrolment_id = invoice.enrolment_id or next(
            (li.enrolment_id for li in lines if li.enrolment_id is not None), None
        )
        if enrolment_id is None:
            logger.info(f"Invoice {invoice_id} is not linked to an enrolment")
            return invoice

        enrolment = await load_enrolment(db, enrolment_id)
        if enrolment.plan is None:
            raise ConfigurationError(f"Enrolment {enrolment.id} has no plan")

        context = await load_coverage_context(db, enrolment)
        if not context.templates:
            raise ConfigurationError(f"Enrolment {enrolment.id} has no class template")
        assert_plan_matches(invoice, enrolment, context.templates)

        quantity = resolve_invoice_quantity(invoice)
        previous_paid_through = enrolment.paid_through_date
        previous_credits = enrolment.credits_balance_cached

        if enrolment.plan.billing_type == BillingType.PER_WEEK:
            _apply_weekly(invoice, context, quantity)
        else:
            await _apply_per_class(db, invoice, context, quantity, today)

        invoice.entitlements_applied_at = now_utc()
        await db.flush()

        snapshot = await refresh_billing_status(db, enrolment.id, today)
        await log_coverage_change(
            db,
            enrolment.id,
            CoverageAuditReason.INVOICE_APPLIED,
            previous_paid_through,
            enrolment.paid_through_date,
            previous_credits,
            snapshot.credits_remaining,
            actor=actor,
            context={"invoice_id": invoice.id, "quantity": quantity},
        )

        await db.commit()
        logger.info(
            f"✅ Applied invoice {invoice.id} to enrolment {enrolment.id}: "
            f"paid_through={enrolment.paid_through_date} credits={snapshot.credits_remaining}"
        )
        return invoice

    except Exception as e:
        await db.rollback()
        logger.error(f"Error applying invoice {invoice_id}: {e}")
        raise


async def apply_paid_invoices_for_enrolment(
    db: AsyncSession, enrolment_id: int, today: Optional[date] = None
) -> List[Invoice]:
    """Apply every paid but unapplied invoice of an enrolment, oldest payment first."""
    result = await db.execute(
        select(Invoice.id)
        .where(
            Invoice.enrolment_id == enrolment_id,
            Invoice.status == InvoiceStatus.PAID,
            Invoice.entitlements_applied_at.is_(None),
        )
        .order_by(Invoice.paid_at, Invoice.id)
    )
    invoice_ids = list(result.scalars().all())

    applied = []
    for invoice_id in invoice_ids:
        applied.append(await apply_paid_invoice_to_enrolment(db, invoice_id, today))
    return applied
