"""Enrolment coverage audit model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class CoverageAuditReason(str, Enum):
    """What caused a paid-through change."""

    INVOICE_APPLIED = "INVOICE_APPLIED"
    HOLIDAY_ADDED = "HOLIDAY_ADDED"
    HOLIDAY_UPDATED = "HOLIDAY_UPDATED"
    HOLIDAY_REMOVED = "HOLIDAY_REMOVED"
    CLASS_CANCELLED = "CLASS_CANCELLED"
    CLASS_UNCANCELLED = "CLASS_UNCANCELLED"
    PLAN_CHANGED = "PLAN_CHANGED"
    SWEEP = "SWEEP"
    MANUAL = "MANUAL"


class EnrolmentCoverageAudit(Base):
    """History of paid-through changes for an enrolment."""

    __tablename__ = "enrolment_coverage_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    enrolment_id: Mapped[int] = mapped_column(
        ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[CoverageAuditReason] = mapped_column(
        SQLEnum(CoverageAuditReason), nullable=False
    )
    previous_paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    new_paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    previous_credits: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    new_credits: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    context_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<EnrolmentCoverageAudit(enrolment_id={self.enrolment_id}, "
            f"reason={self.reason}, {self.previous_paid_through_date} -> "
            f"{self.new_paid_through_date})>"
        )
