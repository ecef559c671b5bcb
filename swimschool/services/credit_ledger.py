"""Credit ledger for per-class enrolments.

The balance is the sum of all ledger events. ``credits_balance_cached`` and
``credits_remaining`` on the enrolment are refreshed from that sum in the same
transaction as every append and are never written any other way.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.exceptions import NotFoundError
from swimschool.models import (
    CreditEventType,
    Enrolment,
    EnrolmentAdjustment,
    EnrolmentAdjustmentType,
    EnrolmentCreditEvent,
)

logger = logging.getLogger(__name__)


class CreditLedger:
    """Append-only credit events for enrolments.

    Methods flush but never commit. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def balance(self, enrolment_id: int) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(EnrolmentCreditEvent.credits_delta), 0)).where(
                EnrolmentCreditEvent.enrolment_id == enrolment_id
            )
        )
        return int(result.scalar_one())

    async def refresh_cached_balance(self, enrolment_id: int) -> int:
        """Re-derive the cached balance columns from the ledger."""
        enrolment = await self.db.get(Enrolment, enrolment_id)
        if enrolment is None:
            raise NotFoundError(f"Enrolment {enrolment_id} not found")

        balance = await self.balance(enrolment_id)
        enrolment.credits_balance_cached = balance
        enrolment.credits_remaining = balance
        await self.db.flush()
        return balance

    async def record_event(
        self,
        enrolment_id: int,
        type: CreditEventType,
        delta: int,
        occurred_on: date,
        invoice_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> EnrolmentCreditEvent:
        """Append one event and refresh the cached balance."""
        event = EnrolmentCreditEvent(
            enrolment_id=enrolment_id,
            type=type,
            credits_delta=delta,
            occurred_on=occurred_on,
            invoice_id=invoice_id,
            note=note,
        )
        self.db.add(event)
        await self.db.flush()

        balance = await self.refresh_cached_balance(enrolment_id)
        logger.info(
            f"Credit event {type.value} {delta:+d} for enrolment {enrolment_id} "
            f"(balance {balance})"
        )
        return event

    async def record_purchase(
        self, enrolment_id: int, credits: int, occurred_on: date, invoice_id: int
    ) -> EnrolmentCreditEvent:
        return await self.record_event(
            enrolment_id, CreditEventType.PURCHASE, credits, occurred_on, invoice_id
        )

    async def record_manual_adjustment(
        self, enrolment_id: int, delta: int, occurred_on: date, note: Optional[str] = None
    ) -> EnrolmentCreditEvent:
        return await self.record_event(
            enrolment_id, CreditEventType.MANUAL_ADJUST, delta, occurred_on, note=note
        )

    async def grant_cancellation_credit(
        self, enrolment_id: int, template_id: int, session_date: date
    ) -> bool:
        """Grant +1 credit for a cancelled session, at most once per session.

        Returns False when the enrolment was already compensated.
        """
        existing = await self._find_adjustment(enrolment_id, template_id, session_date)
        if existing is not None:
            return False

        adjustment = EnrolmentAdjustment(
            enrolment_id=enrolment_id,
            template_id=template_id,
            session_date=session_date,
            type=EnrolmentAdjustmentType.CANCELLATION_CREDIT,
            credits_delta=1,
        )
        # A concurrent grant trips the unique key here and aborts the caller
        self.db.add(adjustment)
        await self.db.flush()

        event = await self.record_event(
            enrolment_id,
            CreditEventType.CANCELLATION_CREDIT,
            1,
            session_date,
            note=f"Class {template_id} cancelled on {session_date.isoformat()}",
        )
        adjustment.credit_event_id = event.id
        await self.db.flush()
        return True

    async def revoke_cancellation_credit(
        self, enrolment_id: int, template_id: int, session_date: date
    ) -> bool:
        """Reverse a cancellation credit when the class is restored.

        Appends a -1 event rather than deleting history.
        """
        adjustment = await self._find_adjustment(enrolment_id, template_id, session_date)
        if adjustment is None:
            return False

        await self.record_event(
            enrolment_id,
            CreditEventType.CANCELLATION_CREDIT,
            -adjustment.credits_delta,
            session_date,
            note=f"Class {template_id} restored on {session_date.isoformat()}",
        )
        await self.db.delete(adjustment)
        await self.db.flush()
        return True

    async def _find_adjustment(
        self, enrolment_id: int, template_id: int, session_date: date
    ) -> Optional[EnrolmentAdjustment]:
        result = await self.db.execute(
            select(EnrolmentAdjustment).where(
                EnrolmentAdjustment.enrolment_id == enrolment_id,
                EnrolmentAdjustment.template_id == template_id,
                EnrolmentAdjustment.session_date == session_date,
                EnrolmentAdjustment.type == EnrolmentAdjustmentType.CANCELLATION_CREDIT,
            )
        )
        return result.scalar_one_or_none()
