"""Enrolment credit ledger model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class CreditEventType(str, Enum):
    """Credit ledger event type."""

    PURCHASE = "PURCHASE"
    MANUAL_ADJUST = "MANUAL_ADJUST"
    CANCELLATION_CREDIT = "CANCELLATION_CREDIT"


class EnrolmentCreditEvent(Base):
    """Append-only credit ledger row. Rows are never updated."""

    __tablename__ = "enrolment_credit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    enrolment_id: Mapped[int] = mapped_column(
        ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[CreditEventType] = mapped_column(SQLEnum(CreditEventType), nullable=False)
    credits_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<EnrolmentCreditEvent(id={self.id}, enrolment_id={self.enrolment_id}, "
            f"type={self.type}, delta={self.credits_delta}, on={self.occurred_on})>"
        )
