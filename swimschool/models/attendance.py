"""Attendance model."""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class AttendanceStatus(str, Enum):
    """Attendance status enum."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    EXCUSED = "EXCUSED"


class Attendance(Base):
    """Attendance of one student at one class occurrence."""

    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint(
            "template_id", "session_date", "student_id",
            name="attendance_template_date_student_unique"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=False
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        SQLEnum(AttendanceStatus), nullable=False
    )
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<Attendance(id={self.id}, template_id={self.template_id}, "
            f"date={self.session_date}, student_id={self.student_id}, status={self.status})>"
        )
