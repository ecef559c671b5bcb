"""Holiday model."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class Holiday(Base):
    """Inclusive date range with no classes.

    Scoped to one template, else to one level, else global.
    """

    __tablename__ = "holidays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=True
    )
    level_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("levels.id", ondelete="CASCADE"), nullable=True
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def scope(self) -> str:
        if self.template_id is not None:
            return "template"
        if self.level_id is not None:
            return "level"
        return "global"

    def __repr__(self) -> str:
        return (
            f"<Holiday(id={self.id}, name='{self.name}', "
            f"{self.start_date}..{self.end_date}, scope={self.scope})>"
        )
