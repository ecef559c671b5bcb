"""Enrolment adjustment model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class EnrolmentAdjustmentType(str, Enum):
    CANCELLATION_CREDIT = "CANCELLATION_CREDIT"


class EnrolmentAdjustment(Base):
    """Marker that an enrolment was already compensated for a session."""

    __tablename__ = "enrolment_adjustments"
    __table_args__ = (
        UniqueConstraint(
            "enrolment_id",
            "template_id",
            "session_date",
            "type",
            name="enrolment_adjustment_unique",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    enrolment_id: Mapped[int] = mapped_column(
        ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=False
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[EnrolmentAdjustmentType] = mapped_column(
        SQLEnum(EnrolmentAdjustmentType), nullable=False
    )
    credits_delta: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credit_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolment_credit_events.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<EnrolmentAdjustment(enrolment_id={self.enrolment_id}, "
            f"template_id={self.template_id}, date={self.session_date}, type={self.type})>"
        )
