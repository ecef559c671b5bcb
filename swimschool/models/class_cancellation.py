"""Class cancellation model."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from swimschool.core.database import Base


class ClassCancellation(Base):
    """One cancelled occurrence of one class template."""

    __tablename__ = "class_cancellations"
    __table_args__ = (
        UniqueConstraint("template_id", "date", name="class_cancellation_unique"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<ClassCancellation(id={self.id}, template_id={self.template_id}, "
            f"date={self.date})>"
        )
