"""Cancelling and restoring single class occurrences.

Open class-pack enrolments on the roster get one credit back per cancelled
session. Weekly and block enrolments are compensated by the recompute that
follows instead, which skips the cancelled date and pushes paid-through out.
Each enrolment is compensated one way only.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.exceptions import NotFoundError, ValidationError
from swimschool.models import (
    BillingType,
    ClassCancellation,
    ClassTemplate,
    CoverageAuditReason,
    EnrolmentAdjustment,
    EnrolmentAdjustmentType,
)
from swimschool.services.credit_ledger import CreditLedger
from swimschool.services.eligibility import get_eligible_enrolments_for_occurrence
from swimschool.services.recompute import ChangedRange, SweepResult, recompute_holiday_enrolments

logger = logging.getLogger(__name__)


async def _get_template(db: AsyncSession, template_id: int) -> ClassTemplate:
    template = await db.get(ClassTemplate, template_id)
    if template is None:
        raise NotFoundError(f"Class template {template_id} not found")
    return template


async def _find_cancellation(
    db: AsyncSession, template_id: int, day: date
) -> Optional[ClassCancellation]:
    result = await db.execute(
        select(ClassCancellation).where(
            ClassCancellation.template_id == template_id,
            ClassCancellation.date == day,
        )
    )
    return result.scalar_one_or_none()


async def cancel_class_occurrence(
    db: AsyncSession,
    template_id: int,
    day: date,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
    session_factory=None,
) -> ClassCancellation:
    """Cancel one occurrence. Cancelling twice changes nothing."""
    try:
        template = await _get_template(db, template_id)
        if template.day_of_week is None or template.day_of_week != day.weekday():
            raise ValidationError(f"Class {template_id} does not run on {day.isoformat()}")

        existing = await _find_cancellation(db, template_id, day)
        if existing is not None:
            return existing

        cancellation = ClassCancellation(
            template_id=template_id, date=day, reason=reason, created_by=actor
        )
        db.add(cancellation)
        await db.flush()

        ledger = CreditLedger(db)
        credited = 0
        for enrolment in await get_eligible_enrolments_for_occurrence(db, template, day):
            plan = enrolment.plan
            if plan is None or plan.billing_type != BillingType.PER_CLASS or plan.is_block:
                continue
            if await ledger.grant_cancellation_credit(enrolment.id, template_id, day):
                credited += 1

        await db.commit()
        logger.info(
            f"❌ Class {template_id} cancelled on {day}; {credited} enrolments credited"
        )
    except Exception as e:
        await db.rollback()
        logger.error(f"Error cancelling class {template_id} on {day}: {e}")
        raise

    await recompute_holiday_enrolments(
        [ChangedRange(day, day, template_id=template_id)],
        CoverageAuditReason.CLASS_CANCELLED,
        session_factory,
        actor,
    )
    return cancellation


async def uncancel_class_occurrence(
    db: AsyncSession,
    template_id: int,
    day: date,
    actor: Optional[str] = None,
    session_factory=None,
) -> Optional[SweepResult]:
    """Restore a cancelled occurrence and reverse the credits it granted."""
    try:
        cancellation = await _find_cancellation(db, template_id, day)
        if cancellation is None:
            return None

        result = await db.execute(
            select(EnrolmentAdjustment.enrolment_id).where(
                EnrolmentAdjustment.template_id == template_id,
                EnrolmentAdjustment.session_date == day,
                EnrolmentAdjustment.type == EnrolmentAdjustmentType.CANCELLATION_CREDIT,
            )
        )
        ledger = CreditLedger(db)
        reversed_count = 0
        for enrolment_id in result.scalars().all():
            if await ledger.revoke_cancellation_credit(enrolment_id, template_id, day):
                reversed_count += 1

        await db.delete(cancellation)
        await db.commit()
        logger.info(
            f"Class {template_id} restored on {day}; {reversed_count} credits reversed"
        )
    except Exception as e:
        await db.rollback()
        logger.error(f"Error restoring class {template_id} on {day}: {e}")
        raise

    return await recompute_holiday_enrolments(
        [ChangedRange(day, day, template_id=template_id)],
        CoverageAuditReason.CLASS_UNCANCELLED,
        session_factory,
        actor,
    )
