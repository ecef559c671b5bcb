"""Enrolment model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class EnrolmentStatus(str, Enum):
    """Enrolment lifecycle status."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CHANGEOVER = "CHANGEOVER"
    CANCELLED = "CANCELLED"


class Enrolment(Base):
    """A student's registration in one or more weekly class slots."""

    __tablename__ = "enrolments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False)
    plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolment_plans.id"), nullable=True
    )
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("class_templates.id"), nullable=True
    )  # Legacy single-template pointer
    status: Mapped[EnrolmentStatus] = mapped_column(
        SQLEnum(EnrolmentStatus), default=EnrolmentStatus.ACTIVE, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Coverage state
    paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_through_date_computed: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True
    )  # Holiday-free nominal end, informational
    next_due_date_computed: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    credits_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    credits_balance_cached: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )  # Refreshed from the credit ledger sum
    coverage_rebased_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # Last class or plan change; earlier invoices are not re-chained

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    student: Mapped["Student"] = relationship("Student", back_populates="enrolments")
    plan: Mapped[Optional["EnrolmentPlan"]] = relationship("EnrolmentPlan")
    template: Mapped[Optional["ClassTemplate"]] = relationship("ClassTemplate")
    class_assignments: Mapped[list["EnrolmentClassAssignment"]] = relationship(
        "EnrolmentClassAssignment",
        back_populates="enrolment",
        cascade="all, delete-orphan",
    )

    @property
    def assigned_templates(self) -> list:
        """Assigned templates, falling back to the legacy pointer.

        Requires ``class_assignments`` (with templates) and ``template`` loaded.
        """
        templates = [a.template for a in self.class_assignments if a.template is not None]
        if not templates and self.template is not None:
            templates = [self.template]
        return templates

    def __repr__(self) -> str:
        return (
            f"<Enrolment(id={self.id}, student_id={self.student_id}, "
            f"plan_id={self.plan_id}, status={self.status}, "
            f"paid_through={self.paid_through_date})>"
        )
