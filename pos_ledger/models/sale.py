"""
Sales invoice model.

A sale always belongs to a customer and raises what the
customer owes by its total. The payment fields are derived
data: remaining_balance is total - amount_paid and
payment_status follows from the same two numbers.
"""

from decimal import Decimal
from typing import ClassVar

from sqlalchemy import String, ForeignKey, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.base import Base
from pos_ledger.models.document import DocumentMixin
from pos_ledger.models.enums import DocumentKind, SaleStatus, PaymentStatus


class Sale(DocumentMixin, Base):
    __tablename__ = "sales"

    document_kind: ClassVar[DocumentKind] = DocumentKind.SALE

    order_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    status: Mapped[SaleStatus] = mapped_column(
        SAEnum(SaleStatus, name="sale_status_enum", create_constraint=True),
        nullable=False,
        default=SaleStatus.COMPLETED,
    )
    total: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    amount_paid: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True, default=Decimal("0")
    )
    remaining_balance: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="sale_payment_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    def __repr__(self) -> str:
        return f"<Sale {self.order_number} total={self.total}>"
