"""
Purchase invoice model.

Only confirmed invoices count towards what we owe a supplier.
The stored total must equal the item lines less discount plus
tax; reconciliation checks that identity.
"""

from decimal import Decimal
from typing import ClassVar

from sqlalchemy import String, ForeignKey, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_ledger.models.base import Base
from pos_ledger.models.document import DocumentMixin
from pos_ledger.models.enums import (
    DocumentKind,
    PaymentStatus,
    PurchaseInvoiceStatus,
)


class PurchaseInvoice(DocumentMixin, Base):
    __tablename__ = "purchase_invoices"

    document_kind: ClassVar[DocumentKind] = DocumentKind.PURCHASE_INVOICE

    invoice_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id"), nullable=False, index=True
    )
    status: Mapped[PurchaseInvoiceStatus] = mapped_column(
        SAEnum(
            PurchaseInvoiceStatus,
            name="purchase_invoice_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=PurchaseInvoiceStatus.DRAFT,
    )
    discount_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    tax_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    total: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    paid_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True, default=Decimal("0")
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="purchase_payment_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    items: Mapped[list["PurchaseInvoiceItem"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PurchaseInvoice {self.invoice_number} ({self.status.value})>"


class PurchaseInvoiceItem(Base):
    __tablename__ = "purchase_invoice_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_invoices.id"), nullable=False, index=True
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    unit_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )

    invoice: Mapped["PurchaseInvoice"] = relationship(back_populates="items")
