"""Enrolment to class template assignment model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class EnrolmentClassAssignment(Base):
    """Links an enrolment to one of its weekly class templates."""

    __tablename__ = "enrolment_class_assignments"
    __table_args__ = (
        UniqueConstraint(
            "enrolment_id", "template_id", name="enrolment_class_assignment_unique"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    enrolment_id: Mapped[int] = mapped_column(
        ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[int] = mapped_column(
        ForeignKey("class_templates.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    enrolment: Mapped["Enrolment"] = relationship(
        "Enrolment", back_populates="class_assignments"
    )
    template: Mapped["ClassTemplate"] = relationship("ClassTemplate")

    def __repr__(self) -> str:
        return (
            f"<EnrolmentClassAssignment(enrolment_id={self.enrolment_id}, "
            f"template_id={self.template_id})>"
        )
