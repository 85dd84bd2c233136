"""
Tests for the LedgerService.

Tests cover:
- Account creation and uniqueness
- Balanced posting and unbalanced rejection
- Per-line validation (exactly one nonzero side)
- Idempotency (duplicate transaction_id)
- Inactive and missing account rejection
- Cached account balances follow account orientation
- Reversals
"""

import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError

from pos_ledger.models.enums import AccountType
from pos_ledger.services.ledger_service import LedgerService, effective_postings
from pos_ledger.schemas.ledger import (
    LedgerAccountCreate,
    PostingLine,
    PostingRequest,
)


# --- Helpers to reduce repetition ---

def make_account(service, code, name, account_type):
    """Create a ledger account and return it."""
    return service.create_account(LedgerAccountCreate(
        code=code,
        name=name,
        account_type=account_type,
    ))


def make_chart(service):
    cash = make_account(service, "1000", "Cash", AccountType.ASSET)
    sales = make_account(service, "4000", "Sales Revenue", AccountType.REVENUE)
    return cash, sales


def cash_sale(amount, transaction_id=None, reference_id=None):
    """Debit cash, credit sales revenue."""
    request = PostingRequest(
        reference_id=reference_id,
        entries=[
            PostingLine(
                account_code="1000",
                debit_amount=Decimal(amount),
                description="Cash sale",
            ),
            PostingLine(
                account_code="4000",
                credit_amount=Decimal(amount),
                description="Cash sale",
            ),
        ],
    )
    if transaction_id is not None:
        request.transaction_id = transaction_id
    return request


# --- Account Creation Tests ---

class TestCreateAccount:

    def test_create_account_succeeds(self, db_session):
        service = LedgerService(db_session)
        account = make_account(service, "1000", "Cash", AccountType.ASSET)
        db_session.commit()

        assert account.id is not None
        assert account.code == "1000"
        assert account.account_type == AccountType.ASSET
        assert account.current_balance == Decimal("0")
        assert account.is_active is True

    def test_duplicate_code_rejected(self, db_session):
        service = LedgerService(db_session)
        make_account(service, "1000", "Cash", AccountType.ASSET)
        db_session.commit()

        with pytest.raises(ValueError, match="already exists"):
            make_account(service, "1000", "Cash Again", AccountType.ASSET)


# --- Post Entries Tests ---

class TestPostEntries:

    def test_balanced_posting_succeeds(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        entries = service.post_entries(cash_sale("500.00"))
        db_session.commit()

        assert len(entries) == 2
        assert entries[0].debit_amount == Decimal("500.00")
        assert entries[1].credit_amount == Decimal("500.00")
        assert entries[0].transaction_id == entries[1].transaction_id

    def test_unbalanced_posting_rejected(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        with pytest.raises(ValueError, match="does not balance"):
            service.post_entries(PostingRequest(entries=[
                PostingLine(account_code="1000", debit_amount=Decimal("500.00")),
                PostingLine(account_code="4000", credit_amount=Decimal("300.00")),
            ]))

    def test_line_with_both_sides_rejected(self):
        with pytest.raises(ValidationError, match="exactly one"):
            PostingLine(
                account_code="1000",
                debit_amount=Decimal("1.00"),
                credit_amount=Decimal("1.00"),
            )

    def test_posting_without_credit_rejected(self):
        with pytest.raises(ValidationError, match="one debit and one credit"):
            PostingRequest(entries=[
                PostingLine(account_code="1000", debit_amount=Decimal("1.00")),
                PostingLine(account_code="5000", debit_amount=Decimal("1.00")),
            ])

    def test_nonexistent_account_rejected(self, db_session):
        service = LedgerService(db_session)

        with pytest.raises(ValueError, match="not found"):
            service.post_entries(cash_sale("100.00"))

    def test_inactive_account_rejected(self, db_session):
        service = LedgerService(db_session)
        cash, _ = make_chart(service)
        cash.is_active = False
        db_session.commit()

        with pytest.raises(ValueError, match="not active"):
            service.post_entries(cash_sale("100.00"))

    def test_idempotency_returns_existing_entries(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        request = cash_sale("250.00", transaction_id=uuid.uuid4())

        first_result = service.post_entries(request)
        db_session.commit()
        second_result = service.post_entries(request)

        assert len(first_result) == len(second_result)
        assert first_result[0].id == second_result[0].id

    def test_idempotent_retry_does_not_move_cache(self, db_session):
        service = LedgerService(db_session)
        cash, _ = make_chart(service)
        db_session.commit()

        request = cash_sale("250.00", transaction_id=uuid.uuid4())
        service.post_entries(request)
        service.post_entries(request)
        db_session.commit()

        assert cash.current_balance == Decimal("250.00")


# --- Balance Calculation Tests ---

class TestAccountBalances:

    def test_asset_and_revenue_orientation(self, db_session):
        """Assets grow with debits, revenue grows with credits."""
        service = LedgerService(db_session)
        cash, sales = make_chart(service)
        db_session.commit()

        for amount in ["500.00", "300.00"]:
            service.post_entries(cash_sale(amount))
        db_session.commit()

        assert service.get_account_balance("1000") == Decimal("800.00")
        assert service.get_account_balance("4000") == Decimal("800.00")
        assert cash.current_balance == Decimal("800.00")
        assert sales.current_balance == Decimal("800.00")

    def test_new_account_has_zero_balance(self, db_session):
        service = LedgerService(db_session)
        make_account(service, "1000", "Cash", AccountType.ASSET)
        db_session.commit()

        assert service.get_account_balance("1000") == Decimal("0")

    def test_nonexistent_account_raises_error(self, db_session):
        service = LedgerService(db_session)

        with pytest.raises(ValueError, match="not found"):
            service.get_account_balance("9999")

    def test_entries_by_account_newest_first(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        service.post_entries(cash_sale("1.00"))
        service.post_entries(cash_sale("2.00"))
        db_session.commit()

        amounts = [e.debit_amount for e in service.get_entries_by_account("1000")]
        assert amounts == [Decimal("2.00"), Decimal("1.00")]


# --- Reversal Tests ---

class TestReversal:

    def test_reversal_mirrors_and_zeroes_balances(self, db_session):
        service = LedgerService(db_session)
        cash, sales = make_chart(service)
        db_session.commit()

        original = service.post_entries(cash_sale("120.00"))
        reversal = service.reverse_posting(original[0].transaction_id)
        db_session.commit()

        assert all(e.reversal_of == original[0].transaction_id for e in reversal)
        assert reversal[0].credit_amount == Decimal("120.00")
        assert service.get_account_balance("1000") == Decimal("0.00")
        assert cash.current_balance == Decimal("0.00")
        assert sales.current_balance == Decimal("0.00")

    def test_reversal_keeps_reference(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()
        reference = uuid.uuid4()

        original = service.post_entries(cash_sale("10.00", reference_id=reference))
        reversal = service.reverse_posting(original[0].transaction_id)

        assert {e.reference_id for e in reversal} == {reference}
        assert effective_postings(original + reversal) == {}

    def test_cannot_reverse_twice(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        original = service.post_entries(cash_sale("10.00"))
        service.reverse_posting(original[0].transaction_id)

        with pytest.raises(ValueError, match="already reversed"):
            service.reverse_posting(original[0].transaction_id)

    def test_cannot_reverse_a_reversal(self, db_session):
        service = LedgerService(db_session)
        make_chart(service)
        db_session.commit()

        original = service.post_entries(cash_sale("10.00"))
        reversal = service.reverse_posting(original[0].transaction_id)

        with pytest.raises(ValueError, match="Cannot reverse a reversal"):
            service.reverse_posting(reversal[0].transaction_id)

    def test_unknown_posting(self, db_session):
        service = LedgerService(db_session)
        with pytest.raises(ValueError, match="not found"):
            service.reverse_posting(uuid.uuid4())
