"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from pos_ledger.models.base import Base
from pos_ledger.models.enums import (
    AccountType,
    PartyRole,
    DocumentKind,
    SaleStatus,
    PaymentStatus,
    PurchaseInvoiceStatus,
    ReturnOrigin,
    ReturnStatus,
    PurchaseOrderStatus,
    SalesOrderStatus,
)
from pos_ledger.models.audit_log import AuditLog
from pos_ledger.models.party import PartyRef, Customer, Supplier
from pos_ledger.models.sale import Sale
from pos_ledger.models.return_document import Return
from pos_ledger.models.purchase_invoice import PurchaseInvoice, PurchaseInvoiceItem
from pos_ledger.models.payment import (
    CashReceipt,
    BankReceipt,
    CashPayment,
    BankPayment,
)
from pos_ledger.models.order import (
    PurchaseOrder,
    PurchaseOrderItem,
    SalesOrder,
    SalesOrderItem,
)
from pos_ledger.models.ledger_account import LedgerAccount
from pos_ledger.models.ledger_entry import LedgerEntry

# Every kind a ledger posting may reference
FINANCIAL_DOCUMENT_MODELS = (
    Sale,
    Return,
    PurchaseInvoice,
    CashReceipt,
    BankReceipt,
    CashPayment,
    BankPayment,
)

__all__ = [
    "Base",
    "AccountType",
    "PartyRole",
    "DocumentKind",
    "SaleStatus",
    "PaymentStatus",
    "PurchaseInvoiceStatus",
    "ReturnOrigin",
    "ReturnStatus",
    "PurchaseOrderStatus",
    "SalesOrderStatus",
    "AuditLog",
    "PartyRef",
    "Customer",
    "Supplier",
    "Sale",
    "Return",
    "PurchaseInvoice",
    "PurchaseInvoiceItem",
    "CashReceipt",
    "BankReceipt",
    "CashPayment",
    "BankPayment",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "SalesOrder",
    "SalesOrderItem",
    "LedgerAccount",
    "LedgerEntry",
    "FINANCIAL_DOCUMENT_MODELS",
]
