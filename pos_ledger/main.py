"""
POS Ledger Consistency Service: FastAPI application.

This is the entry point for the application.
All routers are registered here, and the balance rebuild
scheduler is created and tied to the application lifespan.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from pos_ledger.config import get_settings
from pos_ledger.logging_config import configure_logging
from pos_ledger.models.base import SessionLocal
from pos_ledger.services.rebuild_scheduler import RebuildScheduler
from pos_ledger.api.health import router as health_router
from pos_ledger.api.ledger import router as ledger_router
from pos_ledger.api.admin import router as admin_router

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    scheduler = app.state.rebuild_scheduler
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("balance_rebuild_scheduler_disabled")
    yield
    scheduler.stop()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Balance rebuild, reconciliation and ledger integrity checks",
    lifespan=lifespan,
)

app.state.rebuild_scheduler = RebuildScheduler(
    SessionLocal,
    interval_seconds=settings.REBUILD_INTERVAL_SECONDS,
    max_workers=settings.REBUILD_MAX_WORKERS,
    timezone=settings.LOG_TIMEZONE,
)

# Register routers
app.include_router(health_router)
app.include_router(ledger_router)
app.include_router(admin_router)
