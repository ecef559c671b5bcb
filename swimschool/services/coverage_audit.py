"""Audit trail for paid-through and credit changes."""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.models import CoverageAuditReason, EnrolmentCoverageAudit

logger = logging.getLogger(__name__)


async def log_coverage_change(
    db: AsyncSession,
    enrolment_id: int,
    reason: CoverageAuditReason,
    previous_paid_through_date: Optional[date],
    new_paid_through_date: Optional[date],
    previous_credits: Optional[int] = None,
    new_credits: Optional[int] = None,
    actor: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    force: bool = False,
) -> Optional[EnrolmentCoverageAudit]:
    """
    Record a coverage change for an enrolment.

    Args:
        db: Database session (flushed, not committed)
        enrolment_id: Enrolment whose coverage moved
        reason: What triggered the change
        previous_paid_through_date: Paid-through before the change
        new_paid_through_date: Paid-through after the change
        previous_credits: Credit balance before, for per-class plans
        new_credits: Credit balance after, for per-class plans
        actor: Operator who triggered it, if any
        context: Extra JSON detail (invoice id, holiday range...)
        force: Write the row even when nothing changed

    Returns:
        The audit row, or None when nothing changed and not forced
    """
    if (
        not force
        and previous_paid_through_date == new_paid_through_date
        and previous_credits == new_credits
    ):
        return None

    audit = EnrolmentCoverageAudit(
        enrolment_id=enrolment_id,
        reason=reason,
        previous_paid_through_date=previous_paid_through_date,
        new_paid_through_date=new_paid_through_date,
        previous_credits=previous_credits,
        new_credits=new_credits,
        actor=actor,
        context_json=context,
    )
    db.add(audit)
    await db.flush()

    logger.info(
        f"📝 Coverage {reason.value} for enrolment {enrolment_id}: "
        f"{previous_paid_through_date} -> {new_paid_through_date}"
    )
    return audit


async def get_coverage_history(
    db: AsyncSession, enrolment_id: int, limit: int = 50
) -> List[EnrolmentCoverageAudit]:
    result = await db.execute(
        select(EnrolmentCoverageAudit)
        .where(EnrolmentCoverageAudit.enrolment_id == enrolment_id)
        .order_by(EnrolmentCoverageAudit.created_at.desc(), EnrolmentCoverageAudit.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
