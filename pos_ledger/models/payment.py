"""
Cash and bank vouchers.

Receipts are money coming in from a party, payments are money
going out to a party. Either direction can involve a customer
(e.g. a refund paid out) or a supplier (e.g. a supplier refund
received), so every voucher carries a PartyRef.
"""

from decimal import Decimal
from typing import ClassVar

from sqlalchemy import String, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.base import Base
from pos_ledger.models.document import DocumentMixin, PartyReferenceMixin
from pos_ledger.models.enums import DocumentKind


class VoucherMixin(DocumentMixin, PartyReferenceMixin):
    voucher_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    particular: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.voucher_number} "
            f"{self.amount} {self.party_role.value}:{self.party_id}>"
        )


class CashReceipt(VoucherMixin, Base):
    __tablename__ = "cash_receipts"
    document_kind: ClassVar[DocumentKind] = DocumentKind.CASH_RECEIPT


class BankReceipt(VoucherMixin, Base):
    __tablename__ = "bank_receipts"
    document_kind: ClassVar[DocumentKind] = DocumentKind.BANK_RECEIPT

    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)


class CashPayment(VoucherMixin, Base):
    __tablename__ = "cash_payments"
    document_kind: ClassVar[DocumentKind] = DocumentKind.CASH_PAYMENT


class BankPayment(VoucherMixin, Base):
    __tablename__ = "bank_payments"
    document_kind: ClassVar[DocumentKind] = DocumentKind.BANK_PAYMENT

    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
