"""
Purchase and sales orders.

Orders do not move money and never contribute to a party
balance. Their totals and fulfilment statuses are derived from
their item lines, which makes them subject to reconciliation.
"""

from decimal import Decimal
from typing import ClassVar

from sqlalchemy import String, ForeignKey, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_ledger.models.base import Base
from pos_ledger.models.document import DocumentMixin
from pos_ledger.models.enums import (
    DocumentKind,
    PurchaseOrderStatus,
    SalesOrderStatus,
)


class PurchaseOrder(DocumentMixin, Base):
    __tablename__ = "purchase_orders"

    document_kind: ClassVar[DocumentKind] = DocumentKind.PURCHASE_ORDER

    po_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id"), nullable=False, index=True
    )
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SAEnum(
            PurchaseOrderStatus,
            name="purchase_order_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
    )
    tax: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    total: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )

    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} ({self.status.value})>"


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False, index=True
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    cost_per_unit: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    received_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True, default=Decimal("0")
    )

    order: Mapped["PurchaseOrder"] = relationship(back_populates="items")


class SalesOrder(DocumentMixin, Base):
    __tablename__ = "sales_orders"

    document_kind: ClassVar[DocumentKind] = DocumentKind.SALES_ORDER

    so_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    status: Mapped[SalesOrderStatus] = mapped_column(
        SAEnum(
            SalesOrderStatus,
            name="sales_order_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=SalesOrderStatus.DRAFT,
    )
    tax: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    total: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )

    items: Mapped[list["SalesOrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<SalesOrder {self.so_number} ({self.status.value})>"


class SalesOrderItem(Base):
    __tablename__ = "sales_order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False, index=True
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    unit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    invoiced_quantity: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True, default=Decimal("0")
    )

    order: Mapped["SalesOrder"] = relationship(back_populates="items")
