"""
Reconciliation service: detects and optionally repairs drift.

Stored totals, balances and statuses on documents are derived
data. This service re-derives them and reports every mismatch
as a ReconciliationFinding:

- arithmetic identities (e.g. sale total - paid == remaining)
- derived statuses (pending / partial / paid, fulfilment states),
  skipped for documents in an exempt terminal or draft state
- sale postings in the ledger, linked strictly by reference_id
- cached party balances against BalanceService.compute_balance

With fix=True each fixable finding is written back as a single
column update, committed on its own and recorded in the audit
log. Fixes only move a field to its derived value.

Document fixes are applied before party balances are checked,
since a corrected invoice total changes the supplier balance.
This makes a second fix pass come back empty.
"""

import enum
import json
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from pos_ledger.config import get_settings
from pos_ledger.exceptions import FatalEnumerationError
from pos_ledger.models.audit_log import AuditLog
from pos_ledger.models.enums import (
    DocumentKind,
    PartyRole,
    PaymentStatus,
    PurchaseInvoiceStatus,
    PurchaseOrderStatus,
    SaleStatus,
    SalesOrderStatus,
)
from pos_ledger.models.ledger_entry import LedgerEntry
from pos_ledger.models.order import PurchaseOrder, SalesOrder
from pos_ledger.models.party import (
    BALANCE_CACHE_FIELDS,
    Customer,
    Supplier,
)
from pos_ledger.models.purchase_invoice import PurchaseInvoice
from pos_ledger.models.sale import Sale
from pos_ledger.money import (
    exceeds_tolerance,
    round_money,
    sum_amounts,
    to_decimal,
)
from pos_ledger.services.balance_service import BalanceService
from pos_ledger.services.ledger_service import effective_postings

logger = structlog.get_logger(__name__)


class FindingType(str, enum.Enum):
    SALE_BALANCE = "sale_balance"
    SALE_PAYMENT_STATUS = "sale_payment_status"
    SALE_LEDGER = "sale_ledger"
    PURCHASE_INVOICE_TOTAL = "purchase_invoice_total"
    PURCHASE_INVOICE_PAYMENT_STATUS = "purchase_invoice_payment_status"
    PURCHASE_ORDER_TOTAL = "purchase_order_total"
    PURCHASE_ORDER_STATUS = "purchase_order_status"
    SALES_ORDER_TOTAL = "sales_order_total"
    SALES_ORDER_STATUS = "sales_order_status"
    CUSTOMER_BALANCE = "customer_balance"
    SUPPLIER_BALANCE = "supplier_balance"
    CHECK_ERROR = "check_error"


SALE_STATUS_EXEMPT = frozenset({SaleStatus.CANCELLED, SaleStatus.RETURNED})
PURCHASE_INVOICE_STATUS_EXEMPT = frozenset({
    PurchaseInvoiceStatus.DRAFT,
    PurchaseInvoiceStatus.CANCELLED,
})
PURCHASE_ORDER_STATUS_EXEMPT = frozenset({
    PurchaseOrderStatus.DRAFT,
    PurchaseOrderStatus.CANCELLED,
    PurchaseOrderStatus.CLOSED,
})
SALES_ORDER_STATUS_EXEMPT = frozenset({
    SalesOrderStatus.DRAFT,
    SalesOrderStatus.CANCELLED,
    SalesOrderStatus.CLOSED,
})

# Fixes are addressed by (document_kind, document_id, field)
FIX_TARGETS = {
    DocumentKind.SALE.value: Sale,
    DocumentKind.PURCHASE_INVOICE.value: PurchaseInvoice,
    DocumentKind.PURCHASE_ORDER.value: PurchaseOrder,
    DocumentKind.SALES_ORDER.value: SalesOrder,
    PartyRole.CUSTOMER.value: Customer,
    PartyRole.SUPPLIER.value: Supplier,
}


def _display(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


@dataclass
class ReconciliationFinding:
    """
    One detected discrepancy.

    ``field`` names the column a fix would write; findings
    without one (ledger mismatches, check errors) are report-only.
    """
    type: FindingType
    document_kind: str
    document_id: int
    reference_id: str | None
    expected: object
    actual: object
    message: str
    field: str | None = None

    @property
    def fixable(self) -> bool:
        return self.field is not None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "document_kind": self.document_kind,
            "document_id": self.document_id,
            "reference_id": self.reference_id,
            "expected": _display(self.expected),
            "actual": _display(self.actual),
            "message": self.message,
            "field": self.field,
        }


@dataclass
class ReconciliationReport:
    fix: bool
    findings: list[ReconciliationFinding] = field(default_factory=list)
    checked: dict[str, int] = field(default_factory=dict)
    fixes_applied: int = 0
    fix_failures: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.findings)

    def to_dict(self) -> dict:
        return {
            "fix": self.fix,
            "total_findings": len(self.findings),
            "findings": [f.to_dict() for f in self.findings],
            "checked": dict(self.checked),
            "fixes_applied": self.fixes_applied,
            "fix_failures": self.fix_failures,
            "errors": list(self.errors),
        }


def derive_payment_status(total: Decimal, paid: Decimal) -> PaymentStatus:
    if paid >= total and total > 0:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def derive_fulfilment_status(
    current,
    ordered: Decimal,
    done: Decimal,
    confirmed,
    partial,
    full,
    untouched_states,
):
    """
    Status an order should have given ordered vs fulfilled quantity.

    Nothing fulfilled yet leaves draft/confirmed/cancelled orders
    alone and pulls anything else back to confirmed.
    """
    if done == 0 and ordered > 0:
        return current if current in untouched_states else confirmed
    if done >= ordered and ordered > 0:
        return full
    if done > 0:
        return partial
    return current


class ReconciliationService:

    def __init__(self, db: Session, tolerance: Decimal | None = None):
        self.db = db
        self.tolerance = (
            get_settings().RECONCILIATION_TOLERANCE
            if tolerance is None else tolerance
        )
        self.balance_service = BalanceService(db, tolerance=self.tolerance)

    def reconcile(self, fix: bool = False) -> ReconciliationReport:
        """Run every check; with fix=True also apply the corrections."""
        report = ReconciliationReport(fix=fix)
        logger.info("reconciliation_started", fix=fix)

        document_families = (
            (DocumentKind.SALE, self._load_sales, self._check_sale),
            (DocumentKind.PURCHASE_INVOICE, self._load_purchase_invoices,
             self._check_purchase_invoice),
            (DocumentKind.PURCHASE_ORDER, self._load_purchase_orders,
             self._check_purchase_order),
            (DocumentKind.SALES_ORDER, self._load_sales_orders,
             self._check_sales_order),
        )
        ledger_by_reference = self._load_ledger_by_reference(report)
        document_findings = []
        for kind, load, check in document_families:
            document_findings.extend(
                self._run_family(kind.value, load, check, report, ledger_by_reference)
            )
        report.findings.extend(document_findings)
        if fix:
            self._apply_fixes(document_findings, report)

        party_findings = []
        for role in (PartyRole.CUSTOMER, PartyRole.SUPPLIER):
            party_findings.extend(self._run_party_family(role, report))
        report.findings.extend(party_findings)
        if fix:
            self._apply_fixes(party_findings, report)

        logger.info(
            "reconciliation_completed",
            fix=fix,
            findings=len(report.findings),
            fixes_applied=report.fixes_applied,
            fix_failures=report.fix_failures,
            errors=len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # Family runners
    # ------------------------------------------------------------------

    def _run_family(self, kind, load, check, report, ledger_by_reference):
        findings = []
        try:
            documents = load()
        except FatalEnumerationError as exc:
            logger.error("reconciliation_enumeration_failed", family=kind, error=str(exc))
            report.errors.append(str(exc))
            return findings

        report.checked[kind] = len(documents)
        for document in documents:
            try:
                findings.extend(check(document, ledger_by_reference))
            except Exception as exc:
                findings.append(self._check_error(kind, document, exc))
        return findings

    def _run_party_family(self, role: PartyRole, report) -> list:
        findings = []
        try:
            party_ids = self.balance_service.list_party_ids(role)
        except FatalEnumerationError as exc:
            logger.error(
                "reconciliation_enumeration_failed", family=role.value, error=str(exc)
            )
            report.errors.append(str(exc))
            return findings

        report.checked[role.value] = len(party_ids)
        finding_type = (
            FindingType.CUSTOMER_BALANCE
            if role == PartyRole.CUSTOMER else FindingType.SUPPLIER_BALANCE
        )
        for party_id in party_ids:
            try:
                check = self.balance_service.verify_party_balance(party_id, role)
            except Exception as exc:
                findings.append(ReconciliationFinding(
                    type=FindingType.CHECK_ERROR,
                    document_kind=role.value,
                    document_id=party_id,
                    reference_id=None,
                    expected=None,
                    actual=None,
                    message=f"Could not verify balance: {exc}",
                ))
                continue
            if not check.is_match:
                findings.append(ReconciliationFinding(
                    type=finding_type,
                    document_kind=role.value,
                    document_id=party_id,
                    reference_id=None,
                    expected=check.computed,
                    actual=check.stored,
                    message=(
                        f"Cached balance {check.stored} differs from "
                        f"ledger-derived balance {check.computed} "
                        f"by {check.difference}"
                    ),
                    field=BALANCE_CACHE_FIELDS[role],
                ))
        return findings

    def _check_error(self, kind: str, document, exc: Exception) -> ReconciliationFinding:
        logger.warning(
            "reconciliation_check_error",
            family=kind,
            document_id=document.id,
            error=str(exc),
        )
        return ReconciliationFinding(
            type=FindingType.CHECK_ERROR,
            document_kind=kind,
            document_id=document.id,
            reference_id=_document_number(document),
            expected=None,
            actual=None,
            message=f"Check could not be evaluated: {exc}",
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, stmt, family: str) -> list:
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise FatalEnumerationError(f"Could not list {family}: {exc}") from exc

    def _load_sales(self):
        return self._load(
            select(Sale).where(Sale.is_deleted == False).order_by(Sale.id),  # noqa: E712
            "sales",
        )

    def _load_purchase_invoices(self):
        return self._load(
            select(PurchaseInvoice)
            .options(selectinload(PurchaseInvoice.items))
            .where(PurchaseInvoice.is_deleted == False)  # noqa: E712
            .order_by(PurchaseInvoice.id),
            "purchase invoices",
        )

    def _load_purchase_orders(self):
        return self._load(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .where(PurchaseOrder.is_deleted == False)  # noqa: E712
            .order_by(PurchaseOrder.id),
            "purchase orders",
        )

    def _load_sales_orders(self):
        return self._load(
            select(SalesOrder)
            .options(selectinload(SalesOrder.items))
            .where(SalesOrder.is_deleted == False)  # noqa: E712
            .order_by(SalesOrder.id),
            "sales orders",
        )

    def _load_ledger_by_reference(self, report) -> dict:
        """Referenced ledger lines, keyed by reference_id."""
        try:
            entries = self._load(
                select(LedgerEntry).where(LedgerEntry.reference_id.is_not(None)),
                "ledger entries",
            )
        except FatalEnumerationError as exc:
            logger.error("reconciliation_enumeration_failed", family="ledger", error=str(exc))
            report.errors.append(str(exc))
            return {}
        by_reference = defaultdict(list)
        for entry in entries:
            by_reference[entry.reference_id].append(entry)
        return by_reference

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_sale(self, sale: Sale, ledger_by_reference) -> list:
        findings = []
        kind = DocumentKind.SALE.value
        total = to_decimal(sale.total)
        paid = to_decimal(sale.amount_paid)
        stored_remaining = to_decimal(sale.remaining_balance)

        expected_remaining = round_money(total - paid)
        if exceeds_tolerance(expected_remaining, stored_remaining, self.tolerance):
            findings.append(ReconciliationFinding(
                type=FindingType.SALE_BALANCE,
                document_kind=kind,
                document_id=sale.id,
                reference_id=sale.order_number,
                expected=expected_remaining,
                actual=stored_remaining,
                message=(
                    f"Internal mismatch: Total({total}) - Paid({paid}) = "
                    f"{expected_remaining}, but stored is {stored_remaining}"
                ),
                field="remaining_balance",
            ))

        if sale.status not in SALE_STATUS_EXEMPT:
            expected_status = derive_payment_status(total, paid)
            if sale.payment_status != expected_status:
                findings.append(ReconciliationFinding(
                    type=FindingType.SALE_PAYMENT_STATUS,
                    document_kind=kind,
                    document_id=sale.id,
                    reference_id=sale.order_number,
                    expected=expected_status,
                    actual=sale.payment_status,
                    message=(
                        f"Status mismatch: Total({total}), Paid({paid}) => "
                        f"should be {expected_status.value}"
                    ),
                    field="payment_status",
                ))

        postings = effective_postings(ledger_by_reference.get(sale.external_id, []))
        ledger_total = sum_amounts(
            line.debit_amount for lines in postings.values() for line in lines
        )
        if ledger_total > 0 and exceeds_tolerance(total, ledger_total, self.tolerance):
            findings.append(ReconciliationFinding(
                type=FindingType.SALE_LEDGER,
                document_kind=kind,
                document_id=sale.id,
                reference_id=sale.order_number,
                expected=round_money(total),
                actual=round_money(ledger_total),
                message=(
                    f"Ledger total({round_money(ledger_total)}) does not match "
                    f"invoice total({round_money(total)})"
                ),
            ))
        return findings

    def _check_purchase_invoice(self, invoice: PurchaseInvoice, _ledger) -> list:
        findings = []
        kind = DocumentKind.PURCHASE_INVOICE.value
        items_total = sum_amounts(
            to_decimal(item.quantity) * to_decimal(item.unit_cost)
            for item in invoice.items
        )
        expected_total = round_money(
            items_total
            - to_decimal(invoice.discount_amount)
            + to_decimal(invoice.tax_amount)
        )
        stored_total = to_decimal(invoice.total)
        if exceeds_tolerance(expected_total, stored_total, self.tolerance):
            findings.append(ReconciliationFinding(
                type=FindingType.PURCHASE_INVOICE_TOTAL,
                document_kind=kind,
                document_id=invoice.id,
                reference_id=invoice.invoice_number,
                expected=expected_total,
                actual=stored_total,
                message="Pricing summary mismatch with item totals.",
                field="total",
            ))

        if invoice.status not in PURCHASE_INVOICE_STATUS_EXEMPT:
            paid = to_decimal(invoice.paid_amount)
            # Derived from the corrected total so one fix pass settles both
            expected_status = derive_payment_status(expected_total, paid)
            if invoice.payment_status != expected_status:
                findings.append(ReconciliationFinding(
                    type=FindingType.PURCHASE_INVOICE_PAYMENT_STATUS,
                    document_kind=kind,
                    document_id=invoice.id,
                    reference_id=invoice.invoice_number,
                    expected=expected_status,
                    actual=invoice.payment_status,
                    message=(
                        f"Status mismatch: Total({expected_total}), "
                        f"Paid({paid}) => should be {expected_status.value}"
                    ),
                    field="payment_status",
                ))
        return findings

    def _check_purchase_order(self, order: PurchaseOrder, _ledger) -> list:
        return self._check_order(
            order,
            kind=DocumentKind.PURCHASE_ORDER.value,
            reference=order.po_number,
            price_of=lambda item: item.cost_per_unit,
            done_of=lambda item: item.received_quantity,
            done_label="Received",
            total_type=FindingType.PURCHASE_ORDER_TOTAL,
            status_type=FindingType.PURCHASE_ORDER_STATUS,
            statuses=(
                PurchaseOrderStatus.CONFIRMED,
                PurchaseOrderStatus.PARTIALLY_RECEIVED,
                PurchaseOrderStatus.FULLY_RECEIVED,
            ),
            untouched={
                PurchaseOrderStatus.DRAFT,
                PurchaseOrderStatus.CONFIRMED,
                PurchaseOrderStatus.CANCELLED,
            },
            exempt=PURCHASE_ORDER_STATUS_EXEMPT,
        )

    def _check_sales_order(self, order: SalesOrder, _ledger) -> list:
        return self._check_order(
            order,
            kind=DocumentKind.SALES_ORDER.value,
            reference=order.so_number,
            price_of=lambda item: item.unit_price,
            done_of=lambda item: item.invoiced_quantity,
            done_label="Invoiced",
            total_type=FindingType.SALES_ORDER_TOTAL,
            status_type=FindingType.SALES_ORDER_STATUS,
            statuses=(
                SalesOrderStatus.CONFIRMED,
                SalesOrderStatus.PARTIALLY_INVOICED,
                SalesOrderStatus.FULLY_INVOICED,
            ),
            untouched={
                SalesOrderStatus.DRAFT,
                SalesOrderStatus.CONFIRMED,
                SalesOrderStatus.CANCELLED,
            },
            exempt=SALES_ORDER_STATUS_EXEMPT,
        )

    def _check_order(
        self, order, *, kind, reference, price_of, done_of, done_label,
        total_type, status_type, statuses, untouched, exempt,
    ) -> list:
        findings = []
        items_total = sum_amounts(
            to_decimal(item.quantity) * to_decimal(price_of(item))
            for item in order.items
        )
        expected_total = round_money(items_total + to_decimal(order.tax))
        stored_total = to_decimal(order.total)
        if exceeds_tolerance(expected_total, stored_total, self.tolerance):
            findings.append(ReconciliationFinding(
                type=total_type,
                document_kind=kind,
                document_id=order.id,
                reference_id=reference,
                expected=expected_total,
                actual=stored_total,
                message="Grand total mismatch with item totals.",
                field="total",
            ))

        if order.status in exempt:
            return findings
        ordered = sum_amounts(to_decimal(item.quantity) for item in order.items)
        done = sum_amounts(to_decimal(done_of(item)) for item in order.items)
        confirmed, partial, full = statuses
        expected_status = derive_fulfilment_status(
            order.status, ordered, done, confirmed, partial, full, untouched
        )
        if order.status != expected_status:
            findings.append(ReconciliationFinding(
                type=status_type,
                document_kind=kind,
                document_id=order.id,
                reference_id=reference,
                expected=expected_status,
                actual=order.status,
                message=(
                    f"Status mismatch: Ordered({ordered}), "
                    f"{done_label}({done}) => should be {expected_status.value}"
                ),
                field="status",
            ))
        return findings

    # ------------------------------------------------------------------
    # Fixes
    # ------------------------------------------------------------------

    def _apply_fixes(self, findings: list, report: ReconciliationReport) -> None:
        for finding in findings:
            if not finding.fixable:
                continue
            model = FIX_TARGETS[finding.document_kind]
            try:
                self.db.execute(
                    update(model)
                    .where(model.id == finding.document_id)
                    .values({finding.field: finding.expected})
                )
                self.db.add(AuditLog(
                    event_type="reconciliation_fix",
                    details=json.dumps(finding.to_dict()),
                ))
                self.db.commit()
                report.fixes_applied += 1
            except Exception as exc:
                self.db.rollback()
                report.fix_failures += 1
                logger.error(
                    "reconciliation_fix_failed",
                    finding_type=finding.type.value,
                    document_kind=finding.document_kind,
                    document_id=finding.document_id,
                    error=str(exc),
                )


def _document_number(document) -> str | None:
    for attr in ("order_number", "invoice_number", "po_number", "so_number"):
        value = getattr(document, attr, None)
        if value:
            return value
    return None
