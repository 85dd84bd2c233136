"""
Ledger entry model.

Each entry is one line of a posting. A posting is the group of
lines sharing a transaction_id; its debits always equal its
credits. Lines written outside LedgerService (imports, manual
fixes) may carry no transaction_id at all.

Entries are append-only: a mistake is corrected by a reversal
posting (reversal_of set), never by editing a line.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.base import Base


class LedgerEntry(Base):
    """
    An immutable debit or credit line in the ledger.

    Exactly one of debit_amount / credit_amount is nonzero.
    reference_id points at the external_id of the financial
    document that caused the posting; manual journals leave it
    empty.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, index=True
    )
    account_code: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0")
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0")
    )
    reference_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, index=True
    )
    reversal_of: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, index=True
    )
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.account_code} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
