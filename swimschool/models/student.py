"""Student model."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class Student(Base):
    """Student model."""

    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    family_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("families.id"), nullable=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    level_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("levels.id"), nullable=True
    )  # Current swim level
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    family: Mapped[Optional["Family"]] = relationship("Family", back_populates="students")
    level: Mapped[Optional["Level"]] = relationship("Level")
    enrolments: Mapped[list["Enrolment"]] = relationship(
        "Enrolment", back_populates="student"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name='{self.first_name} {self.last_name}')>"
