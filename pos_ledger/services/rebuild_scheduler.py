"""
Rebuild scheduler: keeps cached party balances converged.

On a fixed interval the scheduler recomputes every customer and
supplier balance through BalanceService and writes it to the
party's balance cache field. The cache can therefore drift for
at most one interval, whatever the write paths elsewhere do.

Run states are Idle -> Running -> Idle. One run at a time per
scheduler instance, guarded by a non-blocking single-slot lock:

- a scheduled tick that finds a run in flight skips silently
- trigger_manual() in the same situation raises AlreadyRunningError

The guard only prevents wasted duplicate work. Cache writes are
idempotent and last-writer-wins, so interleaving is harmless.

Failure policy: a party that fails is counted in ``errors`` and
the batch carries on. Failing to enumerate parties aborts the run
and leaves last_run_time / last_run_stats from the previous good
run untouched. Nothing but AlreadyRunningError leaves this class.
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable

import structlog
from sqlalchemy.orm import Session

from pos_ledger.exceptions import AlreadyRunningError
from pos_ledger.models.audit_log import AuditLog
from pos_ledger.models.enums import PartyRole
from pos_ledger.services.balance_service import BalanceService

logger = structlog.get_logger(__name__)

SCHEDULED = "scheduled"
MANUAL = "manual"


@dataclass
class RunStats:
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    customers_updated: int = 0
    suppliers_updated: int = 0
    errors: int = 0
    duration_ms: int = 0
    aborted: bool = False
    fatal_error: str | None = None

    @property
    def updated(self) -> int:
        return self.customers_updated + self.suppliers_updated

    def to_dict(self) -> dict:
        data = asdict(self)
        data["updated"] = self.updated
        return data


@dataclass
class _RoleResult:
    updated: int = 0
    errors: int = 0
    failed_party_ids: list[int] = field(default_factory=list)


class RebuildScheduler:
    """
    Periodic, mutually exclusive rebuild of all party balances.

    Each instance owns its own run state, so several schedulers
    (e.g. in tests) never share a running flag.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: int = 60,
        max_workers: int = 1,
        service_factory: Callable[[Session], BalanceService] = BalanceService,
        timezone: str = "UTC",
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._interval = interval_seconds
        self._max_workers = max_workers
        self._timezone = timezone

        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self.last_run_time: datetime | None = None
        self.last_run_stats: RunStats | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def is_initialized(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking every interval in a background thread."""
        if self.is_initialized:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="balance-rebuild",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "balance_rebuild_scheduler_started",
            interval_seconds=self._interval,
        )

    def stop(self, timeout: float | None = None) -> None:
        """
        Cancel future ticks.

        An in-flight run is never interrupted; it completes
        normally. Pass a timeout to wait for it.
        """
        self._stop_event.set()
        if timeout is not None and self._thread is not None:
            self._thread.join(timeout=timeout)
        logger.info("balance_rebuild_scheduler_stopped")

    def run_once(self) -> RunStats | None:
        """
        Scheduled-path run.

        Returns None, without raising, when another run is
        already in flight.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("balance_rebuild_skipped", reason="previous run in progress")
            return None
        try:
            return self._execute(SCHEDULED)
        finally:
            self._run_lock.release()

    def trigger_manual(self) -> RunStats:
        """Operator-triggered run; raises AlreadyRunningError on collision."""
        if not self._run_lock.acquire(blocking=False):
            raise AlreadyRunningError()
        try:
            stats = self._execute(MANUAL)
        finally:
            self._run_lock.release()
        self._audit_manual_run(stats)
        return stats

    def status(self) -> dict:
        return {
            "is_initialized": self.is_initialized,
            "is_running": self.is_running,
            "schedule": f"every {self._interval}s",
            "interval_seconds": self._interval,
            "timezone": self._timezone,
            "last_run_time": self.last_run_time,
            "last_run_stats": (
                self.last_run_stats.to_dict() if self.last_run_stats else None
            ),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Tick until stopped. Waits one interval before the first run."""
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("balance_rebuild_tick_failed")

    def _execute(self, trigger: str) -> RunStats:
        stats = RunStats(trigger=trigger, started_at=datetime.utcnow())
        started = time.monotonic()
        logger.info("balance_rebuild_started", trigger=trigger)

        try:
            parties = {
                role: self._list_parties(role)
                for role in (PartyRole.CUSTOMER, PartyRole.SUPPLIER)
            }
        except Exception as exc:
            stats.aborted = True
            stats.fatal_error = str(exc)
            stats.finished_at = datetime.utcnow()
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(
                "balance_rebuild_fatal_error",
                trigger=trigger,
                error=str(exc),
                exc_info=True,
            )
            return stats

        customers = self._rebuild_role(PartyRole.CUSTOMER, parties[PartyRole.CUSTOMER])
        suppliers = self._rebuild_role(PartyRole.SUPPLIER, parties[PartyRole.SUPPLIER])

        stats.customers_updated = customers.updated
        stats.suppliers_updated = suppliers.updated
        stats.errors = customers.errors + suppliers.errors
        stats.finished_at = datetime.utcnow()
        stats.duration_ms = int((time.monotonic() - started) * 1000)

        self.last_run_time = stats.finished_at
        self.last_run_stats = stats

        logger.info(
            "balance_rebuild_completed",
            trigger=trigger,
            customers=stats.customers_updated,
            suppliers=stats.suppliers_updated,
            errors=stats.errors,
            duration_ms=stats.duration_ms,
        )
        if stats.errors:
            logger.warning(
                "balance_rebuild_party_errors",
                errors=stats.errors,
                failed_customers=customers.failed_party_ids,
                failed_suppliers=suppliers.failed_party_ids,
            )
        return stats

    def _list_parties(self, role: PartyRole) -> list[int]:
        db = self._session_factory()
        try:
            return self._service_factory(db).list_party_ids(role)
        finally:
            db.close()

    def _rebuild_role(self, role: PartyRole, party_ids: list[int]) -> _RoleResult:
        result = _RoleResult()
        if self._max_workers > 1 and len(party_ids) > 1:
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix=f"rebuild-{role.value}",
            ) as pool:
                outcomes = list(pool.map(
                    lambda party_id: self._rebuild_party(role, party_id),
                    party_ids,
                ))
        else:
            outcomes = [self._rebuild_party(role, pid) for pid in party_ids]

        for party_id, ok in zip(party_ids, outcomes):
            if ok:
                result.updated += 1
            else:
                result.errors += 1
                result.failed_party_ids.append(party_id)
        return result

    def _rebuild_party(self, role: PartyRole, party_id: int) -> bool:
        """Recompute and store one party's balance in its own session."""
        db = None
        try:
            db = self._session_factory()
            service = self._service_factory(db)
            balance = service.compute_balance(party_id, role)
            service.update_cached_balance(party_id, role, balance)
            db.commit()
            return True
        except Exception as exc:
            if db is not None:
                db.rollback()
            logger.error(
                "balance_rebuild_party_failed",
                role=role.value,
                party_id=party_id,
                error=str(exc),
            )
            return False
        finally:
            if db is not None:
                db.close()

    def _audit_manual_run(self, stats: RunStats) -> None:
        db = None
        try:
            db = self._session_factory()
            db.add(AuditLog(
                event_type="balance_rebuild_manual",
                details=json.dumps(stats.to_dict(), default=str),
            ))
            db.commit()
        except Exception as exc:
            if db is not None:
                db.rollback()
            logger.warning("balance_rebuild_audit_failed", error=str(exc))
        finally:
            if db is not None:
                db.close()
