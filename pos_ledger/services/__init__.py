"""Business logic services."""

from pos_ledger.services.ledger_service import LedgerService
from pos_ledger.services.balance_service import BalanceService
from pos_ledger.services.rebuild_scheduler import RebuildScheduler
from pos_ledger.services.reconciliation_service import ReconciliationService
from pos_ledger.services.integrity_service import LedgerIntegrityService

__all__ = [
    "LedgerService",
    "BalanceService",
    "RebuildScheduler",
    "ReconciliationService",
    "LedgerIntegrityService",
]
