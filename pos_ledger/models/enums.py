"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An invalid status or
party role is caught at the database level, not just
in Python validation.
"""

import enum


class AccountType(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


# Accounts whose balance grows with debits; the rest grow with credits.
DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


class PartyRole(str, enum.Enum):
    """Which kind of party a document or balance belongs to."""
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class DocumentKind(str, enum.Enum):
    """Financial document families that feed party balances."""
    SALE = "sale"
    RETURN = "return"
    PURCHASE_INVOICE = "purchase_invoice"
    CASH_RECEIPT = "cash_receipt"
    BANK_RECEIPT = "bank_receipt"
    CASH_PAYMENT = "cash_payment"
    BANK_PAYMENT = "bank_payment"
    # Audited by reconciliation only, never part of a balance
    PURCHASE_ORDER = "purchase_order"
    SALES_ORDER = "sales_order"


class SaleStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, enum.Enum):
    """Payment progress on an invoice, derived from paid vs total."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PurchaseInvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class ReturnOrigin(str, enum.Enum):
    SALES = "sales"
    PURCHASE = "purchase"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    RECEIVED = "received"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Return statuses that reduce the party's balance
COUNTED_RETURN_STATUSES = frozenset({
    ReturnStatus.COMPLETED,
    ReturnStatus.REFUNDED,
    ReturnStatus.APPROVED,
    ReturnStatus.RECEIVED,
})


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PARTIALLY_RECEIVED = "partially_received"
    FULLY_RECEIVED = "fully_received"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class SalesOrderStatus(str, enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PARTIALLY_INVOICED = "partially_invoiced"
    FULLY_INVOICED = "fully_invoiced"
    CANCELLED = "cancelled"
    CLOSED = "closed"
