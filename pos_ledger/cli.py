"""
Operator command line for the ledger consistency subsystem.

    pos-ledger rebuild
    pos-ledger reconcile [--fix]
    pos-ledger integrity
    pos-ledger verify --role customer --party-id 42 [--sync]
    pos-ledger serve [--host H] [--port P]

Reports are printed to stdout as JSON. ``integrity`` and
``verify`` exit with status 1 when they find a problem, so
they can gate a deploy or a cron alert. ``verify`` exits with 2
for an unknown party and 3 when the store cannot be read.
"""

import argparse
import json
import sys

import structlog

from pos_ledger.config import get_settings
from pos_ledger.exceptions import (
    AlreadyRunningError,
    PartyNotFoundError,
    TransientStoreError,
)
from pos_ledger.logging_config import configure_logging
from pos_ledger.models.base import SessionLocal
from pos_ledger.models.enums import PartyRole
from pos_ledger.services.balance_service import BalanceService
from pos_ledger.services.integrity_service import LedgerIntegrityService
from pos_ledger.services.rebuild_scheduler import RebuildScheduler
from pos_ledger.services.reconciliation_service import ReconciliationService

logger = structlog.get_logger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_rebuild(args) -> int:
    settings = get_settings()
    scheduler = RebuildScheduler(
        SessionLocal,
        interval_seconds=settings.REBUILD_INTERVAL_SECONDS,
        max_workers=args.workers or settings.REBUILD_MAX_WORKERS,
        timezone=settings.LOG_TIMEZONE,
    )
    try:
        stats = scheduler.trigger_manual()
    except AlreadyRunningError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    _print_json(stats.to_dict())
    return 1 if stats.aborted else 0


def cmd_reconcile(args) -> int:
    db = SessionLocal()
    try:
        report = ReconciliationService(db).reconcile(fix=args.fix)
    finally:
        db.close()
    _print_json(report.to_dict())
    return 0


def cmd_integrity(args) -> int:
    db = SessionLocal()
    try:
        report = LedgerIntegrityService(db).validate()
    finally:
        db.close()
    _print_json(report.to_dict())
    return 0 if report.valid else 1


def cmd_verify(args) -> int:
    db = SessionLocal()
    service = BalanceService(db)
    try:
        if args.sync:
            check = service.sync_party_balance(args.party_id, args.role)
            db.commit()
        else:
            check = service.verify_party_balance(args.party_id, args.role)
    except PartyNotFoundError as exc:
        db.rollback()
        print(str(exc), file=sys.stderr)
        return 2
    except TransientStoreError as exc:
        db.rollback()
        print(str(exc), file=sys.stderr)
        return 3
    finally:
        db.close()

    _print_json({
        "party_id": check.party_id,
        "role": check.role.value,
        "stored": str(check.stored),
        "computed": str(check.computed),
        "difference": str(check.difference),
        "is_match": check.is_match,
        "synced": args.sync,
    })
    return 0 if check.is_match or args.sync else 1


def cmd_serve(args) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pos_ledger.main:app",
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        reload=settings.DEBUG,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pos-ledger",
        description="Balance rebuild, reconciliation and ledger integrity tools",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this invocation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    rebuild = sub.add_parser("rebuild", help="Recompute every cached party balance")
    rebuild.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Parties rebuilt in parallel (default: REBUILD_MAX_WORKERS)",
    )
    rebuild.set_defaults(func=cmd_rebuild)

    reconcile = sub.add_parser("reconcile", help="Audit stored totals and statuses")
    reconcile.add_argument(
        "--fix",
        action="store_true",
        help="Write the derived value back for every fixable finding",
    )
    reconcile.set_defaults(func=cmd_reconcile)

    integrity = sub.add_parser("integrity", help="Validate double-entry invariants")
    integrity.set_defaults(func=cmd_integrity)

    verify = sub.add_parser("verify", help="Check one party's cached balance")
    verify.add_argument(
        "--role",
        type=PartyRole,
        choices=list(PartyRole),
        metavar="{customer,supplier}",
        required=True,
    )
    verify.add_argument("--party-id", type=int, required=True)
    verify.add_argument(
        "--sync",
        action="store_true",
        help="Overwrite the cache with the derived balance",
    )
    verify.set_defaults(func=cmd_verify)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # Reports own stdout
    configure_logging(level=args.log_level, file=sys.stderr)
    logger.debug("cli_command", command=args.command)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
