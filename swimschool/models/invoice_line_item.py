"""Invoice line item model."""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Enum as SQLEnum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swimschool.core.database import Base


class InvoiceLineItemKind(str, Enum):
    ENROLMENT = "ENROLMENT"
    PRODUCT = "PRODUCT"
    DISCOUNT = "DISCOUNT"
    ADJUSTMENT = "ADJUSTMENT"


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[InvoiceLineItemKind] = mapped_column(
        SQLEnum(InvoiceLineItemKind), nullable=False
    )
    description: Mapped[str] = mapped_column(String(300), default="", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    enrolment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolments.id"), nullable=True
    )
    plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("enrolment_plans.id"), nullable=True
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="line_items")

    def __repr__(self) -> str:
        return (
            f"<InvoiceLineItem(id={self.id}, invoice_id={self.invoice_id}, "
            f"kind={self.kind}, quantity={self.quantity})>"
        )
