"""
Tests for ReconciliationService.

Tests cover:
- Each check family (sales, purchase invoices, orders, parties)
- Exempt statuses
- Strict reference_id linkage between sales and the ledger
- Per-document check errors do not stop the batch
- fix=True corrects every fixable finding, once
"""

import uuid
from decimal import Decimal

from sqlalchemy import select

from pos_ledger.exceptions import CheckError, FatalEnumerationError
from pos_ledger.models import (
    AuditLog,
    Customer,
    LedgerEntry,
    PaymentStatus,
    PurchaseInvoice,
    PurchaseInvoiceStatus,
    PurchaseOrder,
    PurchaseOrderStatus,
    Sale,
    SaleStatus,
    SalesOrder,
    SalesOrderStatus,
    Supplier,
)
from pos_ledger.models.order import PurchaseOrderItem, SalesOrderItem
from pos_ledger.models.purchase_invoice import PurchaseInvoiceItem
from pos_ledger.services.reconciliation_service import (
    FindingType,
    ReconciliationFinding,
    ReconciliationReport,
    ReconciliationService,
)


# --- Helpers ---

def add_customer(db, balance=Decimal("0")):
    customer = Customer(name="Alice", current_balance=balance)
    db.add(customer)
    db.flush()
    return customer


def add_supplier(db, balance=Decimal("0")):
    supplier = Supplier(company_name="Acme", pending_balance=balance)
    db.add(supplier)
    db.flush()
    return supplier


def add_consistent_sale(db, customer, number="S-1", total="100.00", paid="0.00"):
    total, paid = Decimal(total), Decimal(paid)
    if paid == 0:
        status = PaymentStatus.PENDING
    elif paid >= total:
        status = PaymentStatus.PAID
    else:
        status = PaymentStatus.PARTIAL
    sale = Sale(
        order_number=number,
        customer_id=customer.id,
        total=total,
        amount_paid=paid,
        remaining_balance=total - paid,
        payment_status=status,
    )
    db.add(sale)
    db.flush()
    return sale


def add_posting(db, reference_id, amount, transaction_id=None, reversal_of=None):
    transaction_id = transaction_id or uuid.uuid4()
    db.add_all([
        LedgerEntry(
            transaction_id=transaction_id,
            account_code="1100",
            debit_amount=Decimal(amount),
            credit_amount=Decimal("0"),
            reference_id=reference_id,
            reversal_of=reversal_of,
        ),
        LedgerEntry(
            transaction_id=transaction_id,
            account_code="4000",
            debit_amount=Decimal("0"),
            credit_amount=Decimal(amount),
            reference_id=reference_id,
            reversal_of=reversal_of,
        ),
    ])
    return transaction_id


def findings_of(report, finding_type):
    return [f for f in report.findings if f.type == finding_type]


# --- Clean Data ---

class TestCleanData:

    def test_consistent_data_has_no_findings(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        add_consistent_sale(db_session, customer)
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        assert report.findings == []
        assert report.has_discrepancies is False
        assert report.checked["sale"] == 1
        assert report.checked["customer"] == 1

    def test_empty_store_has_no_findings(self, db_session):
        report = ReconciliationService(db_session).reconcile()
        assert report.findings == []
        assert report.errors == []


# --- Sales ---

class TestSales:

    def test_remaining_balance_mismatch(self, db_session):
        customer = add_customer(db_session, balance=Decimal("1000.00"))
        sale = add_consistent_sale(db_session, customer, total="1000.00", paid="400.00")
        sale.remaining_balance = Decimal("500.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.SALE_BALANCE)
        assert finding.document_id == sale.id
        assert finding.reference_id == "S-1"
        assert finding.expected == Decimal("600.00")
        assert finding.actual == Decimal("500.00")
        assert finding.field == "remaining_balance"

    def test_payment_status_mismatch(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        sale = add_consistent_sale(db_session, customer, paid="100.00")
        sale.payment_status = PaymentStatus.PARTIAL
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.SALE_PAYMENT_STATUS)
        assert finding.expected == PaymentStatus.PAID
        assert finding.actual == PaymentStatus.PARTIAL

    def test_cancelled_sale_exempt_from_status_check(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        sale = add_consistent_sale(db_session, customer, paid="100.00")
        sale.payment_status = PaymentStatus.PENDING
        sale.status = SaleStatus.CANCELLED
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert findings_of(report, FindingType.SALE_PAYMENT_STATUS) == []

    def test_soft_deleted_sale_not_checked(self, db_session):
        customer = add_customer(db_session)
        sale = add_consistent_sale(db_session, customer)
        sale.remaining_balance = Decimal("1.00")
        sale.is_deleted = True
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert report.checked["sale"] == 0
        assert report.findings == []


# --- Sale vs Ledger ---

class TestSaleLedger:

    def test_posting_total_mismatch_flagged(self, db_session):
        customer = add_customer(db_session, balance=Decimal("1000.00"))
        sale = add_consistent_sale(db_session, customer, total="1000.00")
        add_posting(db_session, sale.external_id, "900.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.SALE_LEDGER)
        assert finding.expected == Decimal("1000.00")
        assert finding.actual == Decimal("900.00")
        assert finding.fixable is False

    def test_matching_posting_passes(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        sale = add_consistent_sale(db_session, customer)
        add_posting(db_session, sale.external_id, "100.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert findings_of(report, FindingType.SALE_LEDGER) == []

    def test_reversed_posting_ignored(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        sale = add_consistent_sale(db_session, customer)
        wrong = add_posting(db_session, sale.external_id, "90.00")
        add_posting(db_session, sale.external_id, "90.00", reversal_of=wrong)
        add_posting(db_session, sale.external_id, "100.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert findings_of(report, FindingType.SALE_LEDGER) == []

    def test_unposted_sale_not_flagged(self, db_session):
        customer = add_customer(db_session, balance=Decimal("100.00"))
        add_consistent_sale(db_session, customer)
        # Same amount but no reference_id: never matched
        add_posting(db_session, None, "55.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert findings_of(report, FindingType.SALE_LEDGER) == []


# --- Purchase Invoices ---

class TestPurchaseInvoices:

    def _invoice(self, db, supplier, stored_total, paid="0", status=None,
                 payment_status=PaymentStatus.PENDING):
        invoice = PurchaseInvoice(
            invoice_number="PI-1",
            supplier_id=supplier.id,
            status=status or PurchaseInvoiceStatus.RECEIVED,
            discount_amount=Decimal("10.00"),
            tax_amount=Decimal("5.00"),
            total=Decimal(stored_total),
            paid_amount=Decimal(paid),
            payment_status=payment_status,
            items=[
                PurchaseInvoiceItem(
                    product_name="Widget",
                    quantity=Decimal("2"),
                    unit_cost=Decimal("50.00"),
                ),
            ],
        )
        db.add(invoice)
        db.flush()
        return invoice

    def test_total_mismatch_with_items(self, db_session):
        supplier = add_supplier(db_session)
        invoice = self._invoice(db_session, supplier, "100.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.PURCHASE_INVOICE_TOTAL)
        assert finding.document_id == invoice.id
        assert finding.expected == Decimal("95.00")
        assert finding.actual == Decimal("100.00")

    def test_payment_status_uses_derived_total(self, db_session):
        supplier = add_supplier(db_session)
        self._invoice(
            db_session, supplier, "100.00", paid="95.00",
            payment_status=PaymentStatus.PARTIAL,
        )
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.PURCHASE_INVOICE_PAYMENT_STATUS)
        assert finding.expected == PaymentStatus.PAID

    def test_draft_invoice_status_exempt(self, db_session):
        supplier = add_supplier(db_session)
        self._invoice(
            db_session, supplier, "95.00", paid="95.00",
            status=PurchaseInvoiceStatus.DRAFT,
        )
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert report.findings == []


# --- Orders ---

class TestOrders:

    def test_purchase_order_partially_received(self, db_session):
        supplier = add_supplier(db_session)
        order = PurchaseOrder(
            po_number="PO-1",
            supplier_id=supplier.id,
            status=PurchaseOrderStatus.CONFIRMED,
            tax=Decimal("0"),
            total=Decimal("50.00"),
            items=[PurchaseOrderItem(
                product_name="Widget",
                quantity=Decimal("10"),
                cost_per_unit=Decimal("5.00"),
                received_quantity=Decimal("4"),
            )],
        )
        db_session.add(order)
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = report.findings
        assert finding.type == FindingType.PURCHASE_ORDER_STATUS
        assert finding.expected == PurchaseOrderStatus.PARTIALLY_RECEIVED
        assert finding.field == "status"

    def test_closed_purchase_order_exempt(self, db_session):
        supplier = add_supplier(db_session)
        db_session.add(PurchaseOrder(
            po_number="PO-1",
            supplier_id=supplier.id,
            status=PurchaseOrderStatus.CLOSED,
            tax=Decimal("0"),
            total=Decimal("50.00"),
            items=[PurchaseOrderItem(
                product_name="Widget",
                quantity=Decimal("10"),
                cost_per_unit=Decimal("5.00"),
                received_quantity=Decimal("4"),
            )],
        ))
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()
        assert report.findings == []

    def test_sales_order_total_and_status(self, db_session):
        customer = add_customer(db_session)
        db_session.add(SalesOrder(
            so_number="SO-1",
            customer_id=customer.id,
            status=SalesOrderStatus.PARTIALLY_INVOICED,
            tax=Decimal("3.00"),
            total=Decimal("20.00"),
            items=[SalesOrderItem(
                product_name="Gadget",
                quantity=Decimal("2"),
                unit_price=Decimal("12.00"),
                invoiced_quantity=Decimal("2"),
            )],
        ))
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [total] = findings_of(report, FindingType.SALES_ORDER_TOTAL)
        assert total.expected == Decimal("27.00")
        [status] = findings_of(report, FindingType.SALES_ORDER_STATUS)
        assert status.expected == SalesOrderStatus.FULLY_INVOICED

    def test_nothing_invoiced_pulls_back_to_confirmed(self, db_session):
        customer = add_customer(db_session)
        db_session.add(SalesOrder(
            so_number="SO-1",
            customer_id=customer.id,
            status=SalesOrderStatus.FULLY_INVOICED,
            tax=Decimal("0"),
            total=Decimal("24.00"),
            items=[SalesOrderItem(
                product_name="Gadget",
                quantity=Decimal("2"),
                unit_price=Decimal("12.00"),
                invoiced_quantity=Decimal("0"),
            )],
        ))
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [status] = findings_of(report, FindingType.SALES_ORDER_STATUS)
        assert status.expected == SalesOrderStatus.CONFIRMED


# --- Party Balances ---

class TestPartyBalances:

    def test_customer_cache_drift(self, db_session):
        customer = add_customer(db_session, balance=Decimal("10.00"))
        add_consistent_sale(db_session, customer, total="100.00")
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.CUSTOMER_BALANCE)
        assert finding.document_id == customer.id
        assert finding.expected == Decimal("100.00")
        assert finding.actual == Decimal("10.00")
        assert finding.field == "current_balance"

    def test_supplier_cache_drift(self, db_session):
        supplier = add_supplier(db_session, balance=Decimal("5.00"))
        db_session.commit()

        report = ReconciliationService(db_session).reconcile()

        [finding] = findings_of(report, FindingType.SUPPLIER_BALANCE)
        assert finding.expected == Decimal("0.00")
        assert finding.field == "pending_balance"


# --- Error Containment ---

class TestErrors:

    def test_check_error_recorded_and_batch_continues(self, db_session):
        customer = add_customer(db_session, balance=Decimal("200.00"))
        first = add_consistent_sale(db_session, customer, number="S-1")
        second = add_consistent_sale(db_session, customer, number="S-2")
        second.remaining_balance = Decimal("0")
        db_session.commit()
        failing_id = first.id

        class Unreadable(ReconciliationService):
            def _check_sale(self, sale, ledger):
                if sale.id == failing_id:
                    raise CheckError("Malformed amount 'abc'")
                return super()._check_sale(sale, ledger)

        report = Unreadable(db_session).reconcile()

        [error] = findings_of(report, FindingType.CHECK_ERROR)
        assert error.document_id == failing_id
        assert "Malformed amount" in error.message
        assert error.fixable is False
        [balance] = findings_of(report, FindingType.SALE_BALANCE)
        assert balance.document_id == second.id

    def test_enumeration_failure_reported_other_families_run(self, db_session):
        add_supplier(db_session, balance=Decimal("5.00"))
        db_session.commit()

        class NoSales(ReconciliationService):
            def _load_sales(self):
                raise FatalEnumerationError("Could not list sales: timeout")

        report = NoSales(db_session).reconcile()

        assert report.errors == ["Could not list sales: timeout"]
        assert "sale" not in report.checked
        assert findings_of(report, FindingType.SUPPLIER_BALANCE)


# --- Fixes ---

class TestFixes:

    def _seed_drift(self, db):
        customer = add_customer(db)
        sale = add_consistent_sale(db, customer, total="1000.00", paid="400.00")
        sale.remaining_balance = Decimal("500.00")
        sale.payment_status = PaymentStatus.PENDING

        supplier = add_supplier(db)
        db.add(PurchaseInvoice(
            invoice_number="PI-1",
            supplier_id=supplier.id,
            status=PurchaseInvoiceStatus.CONFIRMED,
            discount_amount=Decimal("0"),
            tax_amount=Decimal("0"),
            total=Decimal("120.00"),
            paid_amount=Decimal("100.00"),
            payment_status=PaymentStatus.PARTIAL,
            items=[PurchaseInvoiceItem(
                product_name="Widget",
                quantity=Decimal("2"),
                unit_cost=Decimal("50.00"),
            )],
        ))
        db.add(PurchaseOrder(
            po_number="PO-1",
            supplier_id=supplier.id,
            status=PurchaseOrderStatus.CONFIRMED,
            tax=Decimal("0"),
            total=Decimal("0"),
            items=[PurchaseOrderItem(
                product_name="Widget",
                quantity=Decimal("10"),
                cost_per_unit=Decimal("5.00"),
                received_quantity=Decimal("10"),
            )],
        ))
        db.commit()
        return customer, supplier

    def test_report_only_mode_changes_nothing(self, db_session):
        self._seed_drift(db_session)

        first = ReconciliationService(db_session).reconcile(fix=False)
        second = ReconciliationService(db_session).reconcile(fix=False)

        assert first.fixes_applied == 0
        assert len(first.findings) == len(second.findings) > 0

    def test_fix_twice_leaves_no_findings(self, db_session):
        customer, supplier = self._seed_drift(db_session)

        first = ReconciliationService(db_session).reconcile(fix=True)
        second = ReconciliationService(db_session).reconcile(fix=True)

        assert first.fixes_applied == len(first.findings) == 8
        assert first.fix_failures == 0
        assert second.findings == []
        assert second.fixes_applied == 0

        db_session.refresh(customer)
        db_session.refresh(supplier)
        assert customer.current_balance == Decimal("1000.00")
        assert supplier.pending_balance == Decimal("100.00")

    def test_fixes_are_audited(self, db_session):
        self._seed_drift(db_session)

        report = ReconciliationService(db_session).reconcile(fix=True)

        audits = db_session.execute(
            select(AuditLog).where(AuditLog.event_type == "reconciliation_fix")
        ).scalars().all()
        assert len(audits) == report.fixes_applied

    def test_failed_fix_counted_and_rolled_back(self, db_session):
        customer = add_customer(db_session)
        db_session.commit()
        service = ReconciliationService(db_session)
        report = ReconciliationReport(fix=True)
        bogus = ReconciliationFinding(
            type=FindingType.CUSTOMER_BALANCE,
            document_kind="customer",
            document_id=customer.id,
            reference_id=None,
            expected=Decimal("1.00"),
            actual=Decimal("0.00"),
            message="test",
            field="no_such_column",
        )

        service._apply_fixes([bogus], report)

        assert report.fix_failures == 1
        assert report.fixes_applied == 0
        assert db_session.execute(select(AuditLog)).scalars().all() == []
