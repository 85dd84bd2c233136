"""
Pydantic schemas for the operational admin endpoints.

Services return plain dataclasses; these models are the HTTP
shape of those results. Amounts go out as decimals, which
pydantic serializes as strings so no precision is lost.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from pos_ledger.models.enums import PartyRole


class RunStatsResponse(BaseModel):
    trigger: str
    started_at: datetime
    finished_at: datetime | None
    customers_updated: int
    suppliers_updated: int
    updated: int
    errors: int
    duration_ms: int
    aborted: bool
    fatal_error: str | None


class RebuildResponse(BaseModel):
    message: str
    stats: RunStatsResponse


class SchedulerStatusResponse(BaseModel):
    """Snapshot of the rebuild scheduler's state."""
    is_initialized: bool
    is_running: bool
    schedule: str
    interval_seconds: int
    timezone: str
    last_run_time: datetime | None
    last_run_stats: RunStatsResponse | None


class ReconciliationFindingResponse(BaseModel):
    type: str
    document_kind: str
    document_id: int
    reference_id: str | None
    expected: str | None
    actual: str | None
    message: str
    field: str | None


class ReconciliationResponse(BaseModel):
    fix: bool
    total_findings: int
    findings: list[ReconciliationFindingResponse]
    checked: dict[str, int]
    fixes_applied: int
    fix_failures: int
    errors: list[str]


class IntegrityIssueResponse(BaseModel):
    type: str
    severity: str
    message: str
    reference_id: str | None
    account_code: str | None
    expected: Decimal | None
    actual: Decimal | None
    difference: Decimal | None
    count: int | None


class IntegrityReportResponse(BaseModel):
    valid: bool
    total_debit: Decimal
    total_credit: Decimal
    entries_checked: int
    issues: list[IntegrityIssueResponse]


class PartyBalanceCheckResponse(BaseModel):
    """A party's cached balance next to its derived balance."""
    party_id: int
    role: PartyRole
    stored: Decimal
    computed: Decimal
    difference: Decimal
    is_match: bool

    model_config = {"from_attributes": True}
