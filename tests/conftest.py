"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before and dropped
after every test, so no test data persists.
"""

import os

# Use SQLite for tests; no external database needed. Must be set
# before pos_ledger is imported, since the engine and settings
# are built at import time.
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from pos_ledger.main import app  # noqa: E402
from pos_ledger.models import Base  # noqa: E402
from pos_ledger.models.base import get_db  # noqa: E402
from pos_ledger.services.rebuild_scheduler import RebuildScheduler  # noqa: E402

engine = create_engine(
    TEST_DATABASE_URL,
    # Scheduler runs open sessions from worker threads
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """Factory for code that opens its own sessions."""
    return TestSessionLocal


@pytest.fixture
def scheduler(session_factory):
    """A rebuild scheduler bound to the test database, never started."""
    scheduler = RebuildScheduler(session_factory, interval_seconds=60)
    yield scheduler
    scheduler.stop(timeout=5)


@pytest.fixture
def client(db_session, scheduler):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database, and
    swap in a scheduler that writes to the test database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    original_scheduler = app.state.rebuild_scheduler
    app.dependency_overrides[get_db] = override_get_db
    app.state.rebuild_scheduler = scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.rebuild_scheduler = original_scheduler
