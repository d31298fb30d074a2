"""Tests for health check endpoints."""

import logging

from sqlalchemy.exc import OperationalError

from approvalflow.api.deps import get_db
from approvalflow.api.main import app
from approvalflow.api.middleware.logging import get_client_ip, level_for_status


class BrokenSession:
    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe_healthy(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_readiness_probe_database_down(self, client):
        app.dependency_overrides[get_db] = lambda: BrokenSession()

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["failed"] == ["database"]

    def test_health_requests_are_not_tagged(self, client):
        assert "X-Request-ID" not in client.get("/health").headers

    def test_root(self, client):
        assert client.get("/").json()["version"]


class TestRequestLogging:
    """Test request logging helpers."""

    def test_level_for_status(self):
        assert level_for_status(201) == logging.INFO
        assert level_for_status(409) == logging.WARNING
        assert level_for_status(502) == logging.ERROR

    def test_forwarded_client_ip(self):
        class FakeRequest:
            headers = {"x-forwarded-for": "10.0.0.7, 172.16.0.1"}
            client = None

        assert get_client_ip(FakeRequest()) == "10.0.0.7"

    def test_failed_request_logged_as_warning(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="approvalflow.api.requests"):
            client.get("/api/flows/4040", headers={"X-Actor-Id": "alice"})

        [record] = [r for r in caplog.records if r.name == "approvalflow.api.requests"]
        assert record.levelno == logging.WARNING
        assert "GET /api/flows/4040 -> 404" in record.getMessage()
        assert "actor=alice" in record.getMessage()
