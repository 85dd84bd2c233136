"""
Health check endpoint.

Used by load balancers, monitoring systems, and humans
to verify the application is running and responsive.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from pos_ledger.models.base import get_db

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Return application health status including database connectivity.

    The database check executes a simple query to verify the
    connection is alive. If it fails, the endpoint reports
    "degraded" so the load balancer can take this instance out.
    The rebuild scheduler's state is included for operators.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception:
        db_status = "unhealthy"

    scheduler = getattr(request.app.state, "rebuild_scheduler", None)

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": "pos-ledger",
        "database": db_status,
        "balance_rebuild": {
            "initialized": bool(scheduler and scheduler.is_initialized),
            "running": bool(scheduler and scheduler.is_running),
        },
    }
