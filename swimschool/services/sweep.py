"""Throttled full coverage sweep.

Any request may trigger the sweep, but it runs at most once per
``settings.coverage_sweep_interval_minutes``. The gate is a compare-and-swap
on the single ``coverage_sweep_state`` row: only the caller whose UPDATE
matched the old timestamp proceeds.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.database import AsyncSessionLocal
from swimschool.core.settings import settings
from swimschool.models import (
    SWEEP_STATE_ID,
    CoverageAuditReason,
    CoverageSweepState,
    Enrolment,
    EnrolmentStatus,
)
from swimschool.services.recompute import SweepResult, recompute_enrolments
from swimschool.utils.timezone import now_utc

logger = logging.getLogger(__name__)


async def _ensure_state_row(db: AsyncSession) -> None:
    existing = await db.get(CoverageSweepState, SWEEP_STATE_ID)
    if existing is not None:
        return
    db.add(CoverageSweepState(id=SWEEP_STATE_ID, last_run_at=None))
    try:
        await db.commit()
    except IntegrityError:
        # Another trigger created it first
        await db.rollback()


async def claim_sweep_slot(
    db: AsyncSession, now: Optional[datetime] = None, interval: Optional[timedelta] = None
) -> bool:
    """Atomically claim the next sweep run. Commits when claimed."""
    now = now or now_utc()
    interval = interval or timedelta(minutes=settings.coverage_sweep_interval_minutes)
    await _ensure_state_row(db)

    cutoff = now - interval
    result = await db.execute(
        update(CoverageSweepState)
        .where(
            CoverageSweepState.id == SWEEP_STATE_ID,
            or_(
                CoverageSweepState.last_run_at.is_(None),
                CoverageSweepState.last_run_at <= cutoff,
            ),
        )
        .values(last_run_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    return True


async def run_throttled_sweep(
    session_factory=None,
    now: Optional[datetime] = None,
    interval: Optional[timedelta] = None,
) -> Optional[SweepResult]:
    """Recompute every active enrolment unless a sweep ran recently.

    Returns None when throttled.
    """
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        if not await claim_sweep_slot(db, now, interval):
            logger.debug("Coverage sweep throttled")
            return None

        result = await db.execute(
            select(Enrolment.id)
            .where(
                Enrolment.status == EnrolmentStatus.ACTIVE,
                Enrolment.plan_id.is_not(None),
            )
            .order_by(Enrolment.id)
        )
        enrolment_ids = list(result.scalars().all())

    logger.info(f"🧹 Coverage sweep started for {len(enrolment_ids)} enrolments")
    return await recompute_enrolments(enrolment_ids, CoverageAuditReason.SWEEP, session_factory)
