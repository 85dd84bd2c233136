"""
Tests for the health check endpoint.
"""


def test_health_check_returns_200(client):
    """
    Verify the health endpoint responds with HTTP 200.

    This is the most basic test: can the application
    receive a request and respond? If this fails, nothing
    else will work.
    """
    response = client.get("/health")
    assert response.status_code == 200


def test_health_check_returns_service_name(client):
    response = client.get("/health")
    assert response.json()["service"] == "pos-ledger"


def test_health_check_reports_database_status(client):
    """
    Verify the response includes database connectivity status.

    Monitoring systems use this field to detect database
    outages.
    """
    data = client.get("/health").json()
    assert data["database"] == "healthy"
    assert data["status"] == "healthy"


def test_health_check_reports_scheduler_state(client):
    data = client.get("/health").json()
    assert data["balance_rebuild"] == {"initialized": False, "running": False}
