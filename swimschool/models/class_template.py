"""Class template model."""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Time, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base

WEEKDAY_NAMES = {
    0: "Monday",
    1: "Tuesday",
    2: "Wednesday",
    3: "Thursday",
    4: "Friday",
    5: "Saturday",
    6: "Sunday",
}


class ClassTemplate(Base):
    """Recurring weekly class slot."""

    __tablename__ = "class_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    day_of_week: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )  # 0=Monday .. 6=Sunday
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    level_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("levels.id"), nullable=True
    )
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    level: Mapped[Optional["Level"]] = relationship("Level")

    def __repr__(self) -> str:
        return (
            f"<ClassTemplate(id={self.id}, name='{self.name}', "
            f"day='{WEEKDAY_NAMES.get(self.day_of_week, self.day_of_week)}', "
            f"time={self.start_time}, level_id={self.level_id}, active={self.active})>"
        )
