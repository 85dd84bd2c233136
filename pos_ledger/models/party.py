"""
Party models: customers and suppliers.

A party's running balance is cached on its row for fast reads
elsewhere in the system. The cache is written only by the
rebuild scheduler (and by reconciliation fixes); it is always
derivable from the party's financial documents.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.base import Base
from pos_ledger.models.enums import PartyRole


@dataclass(frozen=True)
class PartyRef:
    """
    Reference to exactly one party.

    Documents that can belong to either a customer or a supplier
    store this as (party_role, party_id), so a document can never
    point at both.
    """
    role: PartyRole
    party_id: int

    @classmethod
    def customer(cls, party_id: int) -> "PartyRef":
        return cls(PartyRole.CUSTOMER, party_id)

    @classmethod
    def supplier(cls, party_id: int) -> "PartyRef":
        return cls(PartyRole.SUPPLIER, party_id)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_name: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0")
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.name}>"


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Amount we owe the supplier
    pending_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0")
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Supplier {self.id} {self.company_name}>"


# Where each role's cached balance lives
PARTY_MODELS = {
    PartyRole.CUSTOMER: Customer,
    PartyRole.SUPPLIER: Supplier,
}

BALANCE_CACHE_FIELDS = {
    PartyRole.CUSTOMER: "current_balance",
    PartyRole.SUPPLIER: "pending_balance",
}
