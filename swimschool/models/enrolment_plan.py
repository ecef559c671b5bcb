"""Enrolment plan model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class BillingType(str, Enum):
    """How a plan is billed."""

    PER_WEEK = "PER_WEEK"
    PER_CLASS = "PER_CLASS"


class EnrolmentType(str, Enum):
    """Shape of a per-class plan."""

    BLOCK = "BLOCK"
    CLASS = "CLASS"


class EnrolmentPlan(Base):
    """Billing contract an enrolment is sold under.

    PER_WEEK plans use ``duration_weeks`` and ``sessions_per_week``.
    PER_CLASS plans use ``block_class_count``.
    """

    __tablename__ = "enrolment_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("levels.id"), nullable=True
    )
    billing_type: Mapped[BillingType] = mapped_column(
        SQLEnum(BillingType), nullable=False
    )
    enrolment_type: Mapped[EnrolmentType] = mapped_column(
        SQLEnum(EnrolmentType), default=EnrolmentType.CLASS, nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    duration_weeks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sessions_per_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    block_class_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    level: Mapped[Optional["Level"]] = relationship("Level")

    @property
    def is_block(self) -> bool:
        return (
            self.billing_type == BillingType.PER_CLASS
            and self.enrolment_type == EnrolmentType.BLOCK
        )

    def __repr__(self) -> str:
        return (
            f"<EnrolmentPlan(id={self.id}, name='{self.name}', "
            f"billing={self.billing_type}, type={self.enrolment_type})>"
        )
