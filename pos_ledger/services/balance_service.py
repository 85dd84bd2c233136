"""
Balance service: derives a party's running balance.

compute_balance() is the single source of truth for what a
customer owes us or what we owe a supplier. The rebuild
scheduler writes its result into the balance cache and the
reconciliation auditor compares the cache against it, so it
must stay free of side effects and deterministic for a fixed
set of documents.

Sign rules (customer balance = receivable, supplier balance =
payable):

    Customer  Sale                            +
    Customer  Cash/Bank payment to customer   +
    Customer  Cash/Bank receipt from customer -
    Customer  Sales return (counted status)   -
    Supplier  Purchase invoice (confirmed)    +
    Supplier  Cash/Bank payment to supplier   -
    Supplier  Cash/Bank receipt from supplier -
    Supplier  Purchase return (counted)       -

Soft-deleted documents never contribute. Rounding happens once,
after the whole fold.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_ledger.config import get_settings
from pos_ledger.exceptions import (
    FatalEnumerationError,
    PartyNotFoundError,
    TransientStoreError,
)
from pos_ledger.models.enums import (
    COUNTED_RETURN_STATUSES,
    PartyRole,
    PurchaseInvoiceStatus,
    ReturnOrigin,
)
from pos_ledger.models.party import BALANCE_CACHE_FIELDS, PARTY_MODELS
from pos_ledger.models.payment import (
    BankPayment,
    BankReceipt,
    CashPayment,
    CashReceipt,
)
from pos_ledger.models.purchase_invoice import PurchaseInvoice
from pos_ledger.models.return_document import Return
from pos_ledger.models.sale import Sale
from pos_ledger.money import (
    ZERO,
    exceeds_tolerance,
    first_nonzero,
    round_money,
    to_decimal,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContributionRule:
    """
    How one document kind moves one role's balance.

    amount_columns are tried in order; the first present,
    nonzero value is the document's amount.
    """
    model: type
    sign: int
    amount_columns: tuple[str, ...]
    party_filter: Callable[[int], list]


def _party_ref_filter(model, role: PartyRole) -> Callable[[int], list]:
    def build(party_id: int) -> list:
        return [model.party_role == role, model.party_id == party_id]
    return build


def _return_filter(role: PartyRole, origin: ReturnOrigin):
    def build(party_id: int) -> list:
        return [
            Return.party_role == role,
            Return.party_id == party_id,
            Return.origin == origin,
            Return.status.in_(list(COUNTED_RETURN_STATUSES)),
        ]
    return build


_RETURN_AMOUNTS = ("net_refund_amount", "total_refund_amount")

CUSTOMER_RULES = (
    ContributionRule(
        Sale, +1, ("total",),
        lambda party_id: [Sale.customer_id == party_id],
    ),
    ContributionRule(
        CashPayment, +1, ("amount",),
        _party_ref_filter(CashPayment, PartyRole.CUSTOMER),
    ),
    ContributionRule(
        BankPayment, +1, ("amount",),
        _party_ref_filter(BankPayment, PartyRole.CUSTOMER),
    ),
    ContributionRule(
        CashReceipt, -1, ("amount",),
        _party_ref_filter(CashReceipt, PartyRole.CUSTOMER),
    ),
    ContributionRule(
        BankReceipt, -1, ("amount",),
        _party_ref_filter(BankReceipt, PartyRole.CUSTOMER),
    ),
    ContributionRule(
        Return, -1, _RETURN_AMOUNTS,
        _return_filter(PartyRole.CUSTOMER, ReturnOrigin.SALES),
    ),
)

SUPPLIER_RULES = (
    ContributionRule(
        PurchaseInvoice, +1, ("total",),
        lambda party_id: [
            PurchaseInvoice.supplier_id == party_id,
            PurchaseInvoice.status == PurchaseInvoiceStatus.CONFIRMED,
        ],
    ),
    ContributionRule(
        CashPayment, -1, ("amount",),
        _party_ref_filter(CashPayment, PartyRole.SUPPLIER),
    ),
    ContributionRule(
        BankPayment, -1, ("amount",),
        _party_ref_filter(BankPayment, PartyRole.SUPPLIER),
    ),
    ContributionRule(
        CashReceipt, -1, ("amount",),
        _party_ref_filter(CashReceipt, PartyRole.SUPPLIER),
    ),
    ContributionRule(
        BankReceipt, -1, ("amount",),
        _party_ref_filter(BankReceipt, PartyRole.SUPPLIER),
    ),
    ContributionRule(
        Return, -1, _RETURN_AMOUNTS,
        _return_filter(PartyRole.SUPPLIER, ReturnOrigin.PURCHASE),
    ),
)

RULES_BY_ROLE = {
    PartyRole.CUSTOMER: CUSTOMER_RULES,
    PartyRole.SUPPLIER: SUPPLIER_RULES,
}


@dataclass
class PartyBalanceCheck:
    """Cached balance of one party next to its derived balance."""
    party_id: int
    role: PartyRole
    stored: Decimal
    computed: Decimal
    difference: Decimal
    is_match: bool


class BalanceService:

    def __init__(self, db: Session, tolerance: Decimal | None = None):
        self.db = db
        self.tolerance = (
            get_settings().RECONCILIATION_TOLERANCE
            if tolerance is None else tolerance
        )

    def compute_balance(self, party_id: int, role: PartyRole) -> Decimal:
        """
        Fold every non-deleted document of the party into one balance.

        Returns Decimal("0.00") for a party without documents. Only
        the reference matching the requested role is read, so a
        document can never be counted for both roles.
        """
        role = PartyRole(role)
        balance = ZERO
        for rule in RULES_BY_ROLE[role]:
            balance += rule.sign * self._rule_total(rule, party_id)
        return round_money(balance)

    def _rule_total(self, rule: ContributionRule, party_id: int) -> Decimal:
        columns = [getattr(rule.model, name) for name in rule.amount_columns]
        stmt = select(*columns).where(
            rule.model.is_deleted == False,  # noqa: E712
            *rule.party_filter(party_id),
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise TransientStoreError(
                f"Could not read {rule.model.__tablename__} "
                f"for party {party_id}: {exc}"
            ) from exc

        total = ZERO
        for row in rows:
            total += first_nonzero(*row)
        return total

    def list_party_ids(self, role: PartyRole) -> list[int]:
        """Every party of the role, including soft-deleted ones."""
        model = PARTY_MODELS[PartyRole(role)]
        try:
            ids = self.db.execute(
                select(model.id).order_by(model.id)
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise FatalEnumerationError(
                f"Could not list {model.__tablename__}: {exc}"
            ) from exc
        return list(ids)

    def get_cached_balance(self, party_id: int, role: PartyRole) -> Decimal:
        role = PartyRole(role)
        model = PARTY_MODELS[role]
        try:
            party = self.db.get(model, party_id)
        except SQLAlchemyError as exc:
            raise TransientStoreError(
                f"Could not load {role.value} {party_id}: {exc}"
            ) from exc
        if party is None:
            raise PartyNotFoundError(f"{role.value.title()} {party_id} not found")
        return to_decimal(getattr(party, BALANCE_CACHE_FIELDS[role]))

    def update_cached_balance(
        self, party_id: int, role: PartyRole, balance: Decimal
    ) -> None:
        """
        Write one party's balance cache field.

        Targeted single-column update; writing the same value twice
        is harmless, so concurrent writers are last-writer-wins.
        """
        role = PartyRole(role)
        model = PARTY_MODELS[role]
        field = BALANCE_CACHE_FIELDS[role]
        try:
            self.db.execute(
                update(model)
                .where(model.id == party_id)
                .values({field: round_money(balance)})
            )
        except SQLAlchemyError as exc:
            raise TransientStoreError(
                f"Could not write {field} for {role.value} {party_id}: {exc}"
            ) from exc

    def verify_party_balance(
        self, party_id: int, role: PartyRole
    ) -> PartyBalanceCheck:
        """Compare a party's cached balance with its derived balance."""
        role = PartyRole(role)
        stored = round_money(self.get_cached_balance(party_id, role))
        computed = self.compute_balance(party_id, role)
        return PartyBalanceCheck(
            party_id=party_id,
            role=role,
            stored=stored,
            computed=computed,
            difference=round_money(stored - computed),
            is_match=not exceeds_tolerance(computed, stored, self.tolerance),
        )

    def sync_party_balance(
        self, party_id: int, role: PartyRole
    ) -> PartyBalanceCheck:
        """
        Overwrite one party's cache with its derived balance.

        Returns the check as it stood before the write. The caller
        commits.
        """
        check = self.verify_party_balance(party_id, role)
        self.update_cached_balance(party_id, check.role, check.computed)
        logger.info(
            "party_balance_synced",
            role=check.role.value,
            party_id=party_id,
            previous=str(check.stored),
            balance=str(check.computed),
        )
        return check
