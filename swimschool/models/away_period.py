"""Away period model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class AwayPeriodStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AwayPeriod(Base):
    """Range of days a student is known to be absent."""

    __tablename__ = "away_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AwayPeriodStatus] = mapped_column(
        SQLEnum(AwayPeriodStatus), default=AwayPeriodStatus.APPROVED, nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def __repr__(self) -> str:
        return (
            f"<AwayPeriod(id={self.id}, student_id={self.student_id}, "
            f"{self.start_date}..{self.end_date}, status={self.status})>"
        )
