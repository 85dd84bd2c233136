"""
Tests for the pos-ledger command line.
"""

import json
from decimal import Decimal

import pytest
import structlog

from pos_ledger import cli
from pos_ledger.exceptions import TransientStoreError
from pos_ledger.models import Customer, LedgerEntry, Sale
from pos_ledger.services.balance_service import BalanceService


@pytest.fixture(autouse=True)
def cli_sessions(monkeypatch, session_factory):
    """Point the CLI at the test database."""
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    yield
    # main() binds structlog to the captured stderr
    structlog.reset_defaults()


def seed(db, cached="0"):
    customer = Customer(name="Alice", current_balance=Decimal(cached))
    db.add(customer)
    db.flush()
    db.add(Sale(
        order_number="S-1",
        customer_id=customer.id,
        total=Decimal("40.00"),
        amount_paid=Decimal("0"),
        remaining_balance=Decimal("40.00"),
    ))
    db.commit()
    return customer


def test_rebuild_prints_stats(db_session, capsys):
    seed(db_session)

    assert cli.main(["rebuild"]) == 0

    stats = json.loads(capsys.readouterr().out)
    assert stats["trigger"] == "manual"
    assert stats["customers_updated"] == 1


def test_reconcile_fix(db_session, capsys):
    customer = seed(db_session)

    assert cli.main(["reconcile", "--fix"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["fix"] is True
    assert report["fixes_applied"] == 1
    db_session.refresh(customer)
    assert customer.current_balance == Decimal("40.00")


def test_integrity_exit_code(db_session, capsys):
    assert cli.main(["integrity"]) == 0
    capsys.readouterr()

    db_session.add(LedgerEntry(
        account_code="1100",
        debit_amount=Decimal("1.00"),
        credit_amount=Decimal("0"),
    ))
    db_session.commit()

    assert cli.main(["integrity"]) == 1
    assert json.loads(capsys.readouterr().out)["valid"] is False


def test_verify_and_sync(db_session, capsys):
    customer = seed(db_session)
    args = ["verify", "--role", "customer", "--party-id", str(customer.id)]

    assert cli.main(args) == 1
    assert json.loads(capsys.readouterr().out)["is_match"] is False

    assert cli.main(args + ["--sync"]) == 0
    capsys.readouterr()
    assert cli.main(args) == 0


def test_verify_unknown_party(capsys):
    assert cli.main(["verify", "--role", "supplier", "--party-id", "7"]) == 2
    assert "not found" in capsys.readouterr().err


def test_bad_role_rejected():
    with pytest.raises(SystemExit):
        cli.main(["verify", "--role", "vendor", "--party-id", "1"])


def test_verify_store_failure(db_session, monkeypatch, capsys):
    customer = seed(db_session)

    def unavailable(self, party_id, role):
        raise TransientStoreError("balance query failed: connection reset")

    monkeypatch.setattr(BalanceService, "compute_balance", unavailable)

    args = ["verify", "--role", "customer", "--party-id", str(customer.id)]
    assert cli.main(args) == 3
    assert cli.main(args + ["--sync"]) == 3
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "connection reset" in captured.err
