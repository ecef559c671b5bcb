"""Makeup credit and booking models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class MakeupCreditStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    USED = "USED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class MakeupBookingStatus(str, Enum):
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    ATTENDED = "ATTENDED"
    MISSED = "MISSED"


class MakeupCredit(Base):
    """Compensation for an excused session, redeemable before expiry."""

    __tablename__ = "makeup_credits"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "earned_from_class_id", "earned_from_session_date",
            name="makeup_credit_source_unique"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    enrolment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolments.id"), nullable=True
    )
    earned_from_class_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id"), nullable=False
    )
    earned_from_session_date: Mapped[date] = mapped_column(Date, nullable=False)
    level_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("levels.id"), nullable=True
    )
    status: Mapped[MakeupCreditStatus] = mapped_column(
        SQLEnum(MakeupCreditStatus), default=MakeupCreditStatus.AVAILABLE, nullable=False
    )
    expires_on: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    bookings: Mapped[list["MakeupBooking"]] = relationship(
        "MakeupBooking", back_populates="makeup_credit"
    )

    def __repr__(self) -> str:
        return (
            f"<MakeupCredit(id={self.id}, student_id={self.student_id}, "
            f"status={self.status}, expires={self.expires_on})>"
        )


class MakeupBooking(Base):
    """A makeup credit redeemed against a specific class occurrence."""

    __tablename__ = "makeup_bookings"
    __table_args__ = (
        UniqueConstraint(
            "target_class_id", "target_session_date", "student_id",
            name="makeup_booking_target_student_unique"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    makeup_credit_id: Mapped[int] = mapped_column(
        ForeignKey("makeup_credits.id"), nullable=False
    )
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    target_class_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id"), nullable=False
    )
    target_session_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[MakeupBookingStatus] = mapped_column(
        SQLEnum(MakeupBookingStatus), default=MakeupBookingStatus.BOOKED, nullable=False
    )
    booked_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    makeup_credit: Mapped["MakeupCredit"] = relationship(
        "MakeupCredit", back_populates="bookings"
    )

    def __repr__(self) -> str:
        return (
            f"<MakeupBooking(id={self.id}, student_id={self.student_id}, "
            f"class_id={self.target_class_id}, date={self.target_session_date}, "
            f"status={self.status})>"
        )
