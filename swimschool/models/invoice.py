"""Invoice model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class InvoiceStatus(str, Enum):
    """Invoice status enum."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


class Invoice(Base):
    """Invoice purchasing a coverage window or a number of credits."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    family_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("families.id"), nullable=True
    )
    enrolment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolments.id"), nullable=True, index=True
    )
    plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolment_plans.id"), nullable=True
    )  # Plan the invoice was issued against
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False
    )
    amount_total: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=0, nullable=False
    )
    coverage_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    coverage_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    credits_purchased: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    entitlements_applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # Set once coverage/credits have been applied
    issued_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    line_items: Mapped[list["InvoiceLineItem"]] = relationship(
        "InvoiceLineItem", back_populates="invoice", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, enrolment_id={self.enrolment_id}, "
            f"status={self.status}, coverage={self.coverage_start}..{self.coverage_end}, "
            f"applied={self.entitlements_applied_at is not None})>"
        )
