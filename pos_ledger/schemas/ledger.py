"""
Pydantic schemas for ledger operations.

These define the API contract: what data comes in,
what data goes out. They are separate from the database
models because the API shape and the storage shape
are often different.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from pos_ledger.models.enums import AccountType


# --- Request Schemas ---

class PostingLine(BaseModel):
    """A single debit or credit line; exactly one side is nonzero."""
    account_code: str = Field(min_length=1, max_length=20)
    debit_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    credit_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    description: str = Field(default="", max_length=255)

    @model_validator(mode="after")
    def exactly_one_side(self) -> "PostingLine":
        if (self.debit_amount > 0) == (self.credit_amount > 0):
            raise ValueError(
                "each line must carry exactly one of debit_amount "
                "or credit_amount"
            )
        return self


class PostingRequest(BaseModel):
    """
    A complete posting: a group of lines that must balance.

    The client may provide a transaction_id (UUID) so that
    retries with the same ID are idempotent. reference_id is
    the external_id of the source document, if any.
    """
    transaction_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    reference_id: uuid.UUID | None = None
    reversal_of: uuid.UUID | None = None
    entries: list[PostingLine] = Field(min_length=2)

    @field_validator("entries")
    @classmethod
    def must_have_debits_and_credits(cls, v: list) -> list:
        has_debit = any(e.debit_amount > 0 for e in v)
        has_credit = any(e.credit_amount > 0 for e in v)
        if not (has_debit and has_credit):
            raise ValueError(
                "posting must contain at least one debit and one credit"
            )
        return v


class LedgerAccountCreate(BaseModel):
    """Request to create a new ledger account."""
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    account_type: AccountType


# --- Response Schemas ---

class LedgerEntryResponse(BaseModel):
    id: int
    transaction_id: uuid.UUID
    account_code: str
    debit_amount: Decimal
    credit_amount: Decimal
    reference_id: uuid.UUID | None
    reversal_of: uuid.UUID | None
    description: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class PostingResponse(BaseModel):
    transaction_id: uuid.UUID
    entries: list[LedgerEntryResponse]
    total_amount: Decimal


class LedgerAccountResponse(BaseModel):
    id: int
    code: str
    name: str
    account_type: AccountType
    current_balance: Decimal
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    """Balance derived from entries, next to the cached value."""
    account_code: str
    account_type: AccountType
    balance: Decimal
    cached_balance: Decimal
