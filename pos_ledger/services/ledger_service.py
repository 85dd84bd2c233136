"""
Ledger service: the only writer of ledger entries.

This service enforces the posting rules:
1. Every posting must balance (debits = credits)
2. Entries are immutable (append-only); corrections are reversals
3. Accounts must exist and be active
4. A transaction_id is posted at most once

It also keeps each account's cached current_balance in step
with its entries. The integrity validator re-derives those
caches independently and reports any drift.
"""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_ledger.models.ledger_account import LedgerAccount
from pos_ledger.models.ledger_entry import LedgerEntry
from pos_ledger.models.enums import DEBIT_NORMAL_TYPES
from pos_ledger.money import ZERO, round_money, sum_amounts
from pos_ledger.schemas.ledger import (
    PostingRequest,
    PostingLine,
    LedgerAccountCreate,
)

logger = structlog.get_logger(__name__)


def oriented_balance(account_type, debits, credits) -> Decimal:
    """
    Balance of an account given its debit and credit totals.

    For ASSET and EXPENSE accounts: balance = debits - credits
    For LIABILITY, EQUITY, and REVENUE: balance = credits - debits
    """
    if account_type in DEBIT_NORMAL_TYPES:
        return round_money(debits - credits)
    return round_money(credits - debits)


def effective_postings(
    entries: list[LedgerEntry],
) -> dict[uuid.UUID | None, list[LedgerEntry]]:
    """
    Group lines into postings, dropping reversed pairs.

    A reversal posting and the posting it reverses cancel out;
    neither is part of the result. Lines without a transaction_id
    are collected under the None key.
    """
    groups: dict[uuid.UUID | None, list[LedgerEntry]] = {}
    reversed_ids: set[uuid.UUID] = set()
    for entry in entries:
        if entry.reversal_of is not None:
            reversed_ids.add(entry.reversal_of)
            continue
        groups.setdefault(entry.transaction_id, []).append(entry)
    return {
        txn_id: lines
        for txn_id, lines in groups.items()
        if txn_id not in reversed_ids
    }


def count_postings(postings: dict[uuid.UUID | None, list[LedgerEntry]]) -> int:
    """
    Number of debit+credit sets in a result of effective_postings.

    Each transaction_id group is one set. Ungrouped lines are
    paired up by side, so one debit line and one credit line
    count once.
    """
    count = 0
    for txn_id, lines in postings.items():
        if txn_id is not None:
            count += 1
            continue
        debits = sum(1 for line in lines if line.debit_amount > 0)
        credits = sum(1 for line in lines if line.credit_amount > 0)
        count += max(debits, credits)
    return count


class LedgerService:
    """
    All ledger writes pass through this service.

    The service takes a database session as a constructor
    argument. This means the caller controls the transaction
    boundary: they decide when to commit or rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, request: LedgerAccountCreate) -> LedgerAccount:
        """
        Create a new ledger account.

        Raises ValueError if the account code already exists.
        """
        existing = self.db.execute(
            select(LedgerAccount).where(LedgerAccount.code == request.code)
        ).scalar_one_or_none()

        if existing:
            raise ValueError(f"Account with code '{request.code}' already exists")

        account = LedgerAccount(
            code=request.code,
            name=request.name,
            account_type=request.account_type,
            current_balance=ZERO,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get_account(self, code: str) -> LedgerAccount:
        account = self.db.execute(
            select(LedgerAccount).where(LedgerAccount.code == code)
        ).scalar_one_or_none()
        if not account:
            raise ValueError(f"Account {code} not found")
        return account

    def post_entries(self, request: PostingRequest) -> list[LedgerEntry]:
        """
        Post a balanced set of lines as a single posting.

        If any check fails, nothing is written. The caller
        is responsible for calling db.commit() after this
        method returns successfully.
        """

        # --- Idempotency: a transaction_id is posted once ---
        existing = self.get_entries_by_transaction(request.transaction_id)
        if existing:
            return existing

        # --- Validate all accounts ---
        codes = {line.account_code for line in request.entries}
        accounts = self.db.execute(
            select(LedgerAccount).where(LedgerAccount.code.in_(sorted(codes)))
        ).scalars().all()
        accounts_by_code = {a.code: a for a in accounts}

        missing = codes - set(accounts_by_code)
        if missing:
            raise ValueError(f"Accounts not found: {sorted(missing)}")

        for account in accounts_by_code.values():
            if not account.is_active:
                raise ValueError(f"Account {account.code} is not active")

        # --- Enforce balance rule ---
        total_debits = sum_amounts(e.debit_amount for e in request.entries)
        total_credits = sum_amounts(e.credit_amount for e in request.entries)

        if total_debits != total_credits:
            raise ValueError(
                f"Posting does not balance: "
                f"debits={total_debits}, credits={total_credits}"
            )

        # --- Create entries and move cached balances ---
        ledger_entries = []
        for line in request.entries:
            entry = LedgerEntry(
                transaction_id=request.transaction_id,
                account_code=line.account_code,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                reference_id=request.reference_id,
                reversal_of=request.reversal_of,
                description=line.description,
            )
            self.db.add(entry)
            ledger_entries.append(entry)

            account = accounts_by_code[line.account_code]
            account.current_balance = round_money(
                account.current_balance
                + oriented_balance(
                    account.account_type, line.debit_amount, line.credit_amount
                )
            )

        self.db.flush()
        logger.debug(
            "ledger_posting_created",
            transaction_id=str(request.transaction_id),
            reference_id=str(request.reference_id) if request.reference_id else None,
            lines=len(ledger_entries),
            amount=str(total_debits),
        )
        return ledger_entries

    def reverse_posting(
        self, transaction_id: uuid.UUID, description: str | None = None
    ) -> list[LedgerEntry]:
        """
        Reverse a posting by posting mirrored lines.

        The original lines are not modified; a new posting with
        reversal_of pointing at the original is created, so the
        full audit trail is kept.
        """
        original = self.get_entries_by_transaction(transaction_id)
        if not original:
            raise ValueError(f"Posting {transaction_id} not found")
        if original[0].reversal_of is not None:
            raise ValueError("Cannot reverse a reversal posting")

        already = self.db.execute(
            select(LedgerEntry.id).where(
                LedgerEntry.reversal_of == transaction_id
            ).limit(1)
        ).scalar_one_or_none()
        if already is not None:
            raise ValueError(f"Posting {transaction_id} already reversed")

        return self.post_entries(PostingRequest(
            reference_id=original[0].reference_id,
            reversal_of=transaction_id,
            entries=[
                PostingLine(
                    account_code=entry.account_code,
                    debit_amount=entry.credit_amount,
                    credit_amount=entry.debit_amount,
                    description=description or f"Reversal: {entry.description}",
                )
                for entry in original
            ],
        ))

    def get_account_balance(self, code: str) -> Decimal:
        """Calculate an account's balance from its entries."""
        account = self.get_account(code)
        entries = self.get_entries_by_account(code)
        return oriented_balance(
            account.account_type,
            sum_amounts(e.debit_amount for e in entries),
            sum_amounts(e.credit_amount for e in entries),
        )

    def get_entries_by_account(self, code: str) -> list[LedgerEntry]:
        """Return all entries for an account, newest first."""
        entries = self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_code == code)
            .order_by(LedgerEntry.timestamp.desc(), LedgerEntry.id.desc())
        ).scalars().all()
        return list(entries)

    def get_entries_by_transaction(
        self, transaction_id: uuid.UUID
    ) -> list[LedgerEntry]:
        """Return all lines of one posting."""
        entries = self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.transaction_id == transaction_id)
            .order_by(LedgerEntry.id)
        ).scalars().all()
        return list(entries)
