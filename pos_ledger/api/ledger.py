"""
Ledger API endpoints.

These endpoints expose the ledger operations to HTTP clients.
The API layer is thin: it handles HTTP concerns (status codes,
response formatting) and delegates all business logic to the
LedgerService.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pos_ledger.models.base import get_db
from pos_ledger.money import round_money, sum_amounts
from pos_ledger.services.ledger_service import LedgerService
from pos_ledger.schemas.ledger import (
    PostingRequest,
    PostingResponse,
    LedgerEntryResponse,
    LedgerAccountCreate,
    LedgerAccountResponse,
    AccountBalanceResponse,
)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def _posting_response(transaction_id: uuid.UUID, entries) -> PostingResponse:
    return PostingResponse(
        transaction_id=transaction_id,
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        total_amount=round_money(sum_amounts(e.debit_amount for e in entries)),
    )


@router.post("/accounts", response_model=LedgerAccountResponse, status_code=201)
def create_ledger_account(
    request: LedgerAccountCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new ledger account.

    Every account in the chart of accounts must be created
    before entries can be posted to it.
    """
    service = LedgerService(db)
    try:
        account = service.create_account(request)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/postings", response_model=PostingResponse, status_code=201)
def post_entries(
    request: PostingRequest,
    db: Session = Depends(get_db),
):
    """
    Post a balanced group of ledger lines.

    The lines must contain at least one debit and one credit,
    and total debits must equal total credits. If the
    transaction_id has been used before, the existing lines
    are returned (idempotency).
    """
    service = LedgerService(db)
    try:
        entries = service.post_entries(request)
        db.commit()
        return _posting_response(request.transaction_id, entries)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/postings/{transaction_id}/reverse",
    response_model=PostingResponse,
    status_code=201,
)
def reverse_posting(
    transaction_id: uuid.UUID,
    db: Session = Depends(get_db),
):
    """Post the mirror image of an existing posting."""
    service = LedgerService(db)
    try:
        entries = service.reverse_posting(transaction_id)
        db.commit()
        return _posting_response(entries[0].transaction_id, entries)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/accounts/{code}/balance",
    response_model=AccountBalanceResponse,
)
def get_account_balance(
    code: str,
    db: Session = Depends(get_db),
):
    """
    Get the balance for a ledger account.

    The balance is calculated from entries; the cached value
    is returned next to it so drift is visible.
    """
    service = LedgerService(db)
    try:
        account = service.get_account(code)
        balance = service.get_account_balance(code)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return AccountBalanceResponse(
        account_code=account.code,
        account_type=account.account_type,
        balance=balance,
        cached_balance=round_money(account.current_balance),
    )


@router.get(
    "/accounts/{code}/entries",
    response_model=list[LedgerEntryResponse],
)
def get_account_entries(
    code: str,
    db: Session = Depends(get_db),
):
    """
    Get all ledger entries for an account, newest first.
    """
    service = LedgerService(db)
    try:
        service.get_account(code)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return service.get_entries_by_account(code)
