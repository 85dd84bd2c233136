"""
Ledger integrity service: global double-entry checks.

Read-only diagnostics over the whole ledger. Every check runs
on every call and independently of the others:

1. Balance invariant: sum of debits == sum of credits
2. Duplicate postings: one source document posted more than once
3. Orphaned postings: reference_id resolves to no document
4. Per-account reconciliation: entries vs cached account balance

A check that cannot be evaluated is reported as a CHECK_ERROR
issue; the remaining checks still run.
"""

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_ledger.config import get_settings
from pos_ledger.models import FINANCIAL_DOCUMENT_MODELS
from pos_ledger.models.ledger_account import LedgerAccount
from pos_ledger.models.ledger_entry import LedgerEntry
from pos_ledger.money import (
    ZERO,
    exceeds_tolerance,
    round_money,
    sum_amounts,
    to_decimal,
)
from pos_ledger.services.ledger_service import (
    count_postings,
    effective_postings,
    oriented_balance,
)

logger = structlog.get_logger(__name__)


class IssueType(str, enum.Enum):
    UNBALANCED_LEDGER = "unbalanced_ledger"
    DUPLICATE_POSTING = "duplicate_posting"
    ORPHANED_POSTING = "orphaned_posting"
    ACCOUNT_BALANCE_MISMATCH = "account_balance_mismatch"
    UNKNOWN_ACCOUNT = "unknown_account"
    CHECK_ERROR = "check_error"


class Severity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


# Account drift above this is treated as high severity
HIGH_SEVERITY_DIFFERENCE = Decimal("100")


@dataclass
class IntegrityIssue:
    type: IssueType
    severity: Severity
    message: str
    reference_id: str | None = None
    account_code: str | None = None
    expected: Decimal | None = None
    actual: Decimal | None = None
    difference: Decimal | None = None
    count: int | None = None


@dataclass
class IntegrityReport:
    valid: bool
    total_debit: Decimal
    total_credit: Decimal
    entries_checked: int = 0
    issues: list[IntegrityIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "entries_checked": self.entries_checked,
            "issues": [
                {
                    "type": issue.type.value,
                    "severity": issue.severity.value,
                    "message": issue.message,
                    "reference_id": issue.reference_id,
                    "account_code": issue.account_code,
                    "expected": _str_or_none(issue.expected),
                    "actual": _str_or_none(issue.actual),
                    "difference": _str_or_none(issue.difference),
                    "count": issue.count,
                }
                for issue in self.issues
            ],
        }


def _str_or_none(value) -> str | None:
    return None if value is None else str(value)


class LedgerIntegrityService:
    """Validates the posted ledger. Never writes."""

    def __init__(self, db: Session, tolerance: Decimal | None = None):
        self.db = db
        self.tolerance = (
            get_settings().RECONCILIATION_TOLERANCE
            if tolerance is None else tolerance
        )

    def validate(self) -> IntegrityReport:
        try:
            entries = list(self.db.execute(select(LedgerEntry)).scalars().all())
        except Exception as exc:
            logger.error("ledger_integrity_load_failed", error=str(exc))
            return IntegrityReport(
                valid=False,
                total_debit=ZERO,
                total_credit=ZERO,
                issues=[IntegrityIssue(
                    type=IssueType.CHECK_ERROR,
                    severity=Severity.CRITICAL,
                    message=f"Could not load ledger entries: {exc}",
                )],
            )

        total_debit = round_money(sum_amounts(e.debit_amount for e in entries))
        total_credit = round_money(sum_amounts(e.credit_amount for e in entries))

        issues: list[IntegrityIssue] = []
        checks = (
            ("balance", self._check_balance),
            ("duplicates", self._check_duplicates),
            ("orphans", self._check_orphans),
            ("accounts", self._check_accounts),
        )
        for name, check in checks:
            try:
                issues.extend(check(entries, total_debit, total_credit))
            except Exception as exc:
                logger.error("ledger_integrity_check_failed", check=name, error=str(exc))
                issues.append(IntegrityIssue(
                    type=IssueType.CHECK_ERROR,
                    severity=Severity.HIGH,
                    message=f"{name} check could not be evaluated: {exc}",
                ))

        report = IntegrityReport(
            valid=not issues,
            total_debit=total_debit,
            total_credit=total_credit,
            entries_checked=len(entries),
            issues=issues,
        )
        logger.info(
            "ledger_integrity_validated",
            valid=report.valid,
            entries=len(entries),
            issues=len(issues),
        )
        return report

    def _check_balance(self, entries, total_debit, total_credit) -> list:
        if not exceeds_tolerance(total_debit, total_credit, self.tolerance):
            return []
        difference = round_money(total_debit - total_credit)
        return [IntegrityIssue(
            type=IssueType.UNBALANCED_LEDGER,
            severity=Severity.CRITICAL,
            message=(
                f"Ledger does not balance: debits={total_debit}, "
                f"credits={total_credit}, difference={difference}"
            ),
            expected=total_debit,
            actual=total_credit,
            difference=difference,
        )]

    def _check_duplicates(self, entries, *_totals) -> list:
        by_reference = defaultdict(list)
        for entry in entries:
            if entry.reference_id is not None:
                by_reference[entry.reference_id].append(entry)

        issues = []
        for reference_id, lines in by_reference.items():
            count = count_postings(effective_postings(lines))
            if count > 1:
                issues.append(IntegrityIssue(
                    type=IssueType.DUPLICATE_POSTING,
                    severity=Severity.HIGH,
                    message=(
                        f"Document {reference_id} is posted "
                        f"{count} times without a reversal"
                    ),
                    reference_id=str(reference_id),
                    count=count,
                ))
        return issues

    def _check_orphans(self, entries, *_totals) -> list:
        known = set()
        for model in FINANCIAL_DOCUMENT_MODELS:
            known.update(self.db.execute(select(model.external_id)).scalars().all())

        orphans = defaultdict(int)
        for entry in entries:
            if entry.reference_id is not None and entry.reference_id not in known:
                orphans[entry.reference_id] += 1

        return [
            IntegrityIssue(
                type=IssueType.ORPHANED_POSTING,
                severity=Severity.HIGH,
                message=(
                    f"{count} ledger line(s) reference missing "
                    f"document {reference_id}"
                ),
                reference_id=str(reference_id),
                count=count,
            )
            for reference_id, count in orphans.items()
        ]

    def _check_accounts(self, entries, *_totals) -> list:
        debits = defaultdict(lambda: ZERO)
        credits = defaultdict(lambda: ZERO)
        for entry in entries:
            debits[entry.account_code] += to_decimal(entry.debit_amount)
            credits[entry.account_code] += to_decimal(entry.credit_amount)

        accounts = self.db.execute(
            select(LedgerAccount).order_by(LedgerAccount.code)
        ).scalars().all()
        chart = {account.code: account for account in accounts}

        issues = []
        for code in sorted(set(debits) - set(chart)):
            issues.append(IntegrityIssue(
                type=IssueType.UNKNOWN_ACCOUNT,
                severity=Severity.HIGH,
                message=f"Entries posted to account {code}, which is not in the chart",
                account_code=code,
            ))

        for code, account in chart.items():
            computed = oriented_balance(
                account.account_type, debits[code], credits[code]
            )
            stored = round_money(account.current_balance)
            if not exceeds_tolerance(computed, stored, self.tolerance):
                continue
            difference = round_money(stored - computed)
            issues.append(IntegrityIssue(
                type=IssueType.ACCOUNT_BALANCE_MISMATCH,
                severity=(
                    Severity.HIGH
                    if abs(difference) > HIGH_SEVERITY_DIFFERENCE
                    else Severity.MEDIUM
                ),
                message=(
                    f"Account {code} stores {stored} but its entries "
                    f"give {computed}"
                ),
                account_code=code,
                expected=computed,
                actual=stored,
                difference=difference,
            ))
        return issues
