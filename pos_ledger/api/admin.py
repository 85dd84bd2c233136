"""
Admin endpoints for the ledger consistency subsystem.

Operators use these to trigger a balance rebuild, inspect the
scheduler, run the reconciliation audit and check the ledger's
double-entry integrity. Like the other routers this layer only
maps HTTP to service calls; all logic lives in the services.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pos_ledger.exceptions import (
    AlreadyRunningError,
    PartyNotFoundError,
    TransientStoreError,
)
from pos_ledger.models.base import get_db
from pos_ledger.models.enums import PartyRole
from pos_ledger.schemas.admin import (
    IntegrityReportResponse,
    PartyBalanceCheckResponse,
    RebuildResponse,
    ReconciliationResponse,
    RunStatsResponse,
    SchedulerStatusResponse,
)
from pos_ledger.services.balance_service import BalanceService
from pos_ledger.services.integrity_service import LedgerIntegrityService
from pos_ledger.services.rebuild_scheduler import RebuildScheduler
from pos_ledger.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_rebuild_scheduler(request: Request) -> RebuildScheduler:
    """The application's scheduler, created at startup."""
    return request.app.state.rebuild_scheduler


# --- Balance rebuild ---

@router.post("/balances/rebuild", response_model=RebuildResponse)
def rebuild_balances(
    scheduler: RebuildScheduler = Depends(get_rebuild_scheduler),
):
    """
    Run a full balance rebuild now.

    Returns 409 if a scheduled or manual run is already in
    flight; the caller should retry later.
    """
    try:
        stats = scheduler.trigger_manual()
    except AlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))

    message = (
        "Balance rebuild aborted" if stats.aborted
        else "Balance rebuild completed"
    )
    return RebuildResponse(
        message=message,
        stats=RunStatsResponse(**stats.to_dict()),
    )


@router.get("/balances/status", response_model=SchedulerStatusResponse)
def get_rebuild_status(
    scheduler: RebuildScheduler = Depends(get_rebuild_scheduler),
):
    return scheduler.status()


@router.get(
    "/balances/{role}/{party_id}/verify",
    response_model=PartyBalanceCheckResponse,
)
def verify_party_balance(
    role: PartyRole,
    party_id: int,
    db: Session = Depends(get_db),
):
    """Compare one party's cached balance with its derived balance."""
    service = BalanceService(db)
    try:
        return service.verify_party_balance(party_id, role)
    except PartyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/balances/{role}/{party_id}/sync",
    response_model=PartyBalanceCheckResponse,
)
def sync_party_balance(
    role: PartyRole,
    party_id: int,
    db: Session = Depends(get_db),
):
    """
    Overwrite one party's cached balance with its derived balance.

    The response describes the cache as it was before the write.
    """
    service = BalanceService(db)
    try:
        check = service.sync_party_balance(party_id, role)
        db.commit()
        return check
    except PartyNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except TransientStoreError as e:
        db.rollback()
        raise HTTPException(status_code=503, detail=str(e))


# --- Reconciliation and integrity ---

@router.post("/reconcile", response_model=ReconciliationResponse)
def reconcile(
    fix: bool = False,
    db: Session = Depends(get_db),
):
    """
    Audit stored totals, statuses and balances.

    With fix=true every fixable finding is corrected and
    audit-logged; the response still lists what was found.
    """
    report = ReconciliationService(db).reconcile(fix=fix)
    return ReconciliationResponse.model_validate(report.to_dict())


@router.get("/ledger/integrity", response_model=IntegrityReportResponse)
def check_ledger_integrity(db: Session = Depends(get_db)):
    """Validate the double-entry invariants. Read-only."""
    report = LedgerIntegrityService(db).validate()
    return IntegrityReportResponse.model_validate(report.to_dict())
