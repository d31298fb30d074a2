"""Tests for the periodic expiry sweep task."""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from approvalflow.core.approval import ApprovalOrchestrator
from approvalflow.core.errors import DirectoryUnavailable
from approvalflow.workers import expiry_tasks
from approvalflow.workers.expiry_tasks import celery_app, expire_overdue_instances


class ClosingDirectory:
    """In-memory directory that records being closed, like the HTTP client it replaces."""

    def __init__(self, directory):
        self._directory = directory
        self.closed = False

    def __getattr__(self, name):
        return getattr(self._directory, name)

    def close(self):
        self.closed = True


@pytest.fixture
def directories():
    return []


@pytest.fixture
def worker_env(monkeypatch, session_factory, directory, directories, settings):
    """Point the task at the test database and in-memory directory."""
    sessions = []

    def make_session():
        session = session_factory()
        sessions.append(session)
        return session

    def make_directory(settings):
        client = ClosingDirectory(directory)
        directories.append(client)
        return client

    monkeypatch.setattr(expiry_tasks, "init_engine", lambda: None)
    monkeypatch.setattr(expiry_tasks, "SessionLocal", make_session)
    monkeypatch.setattr(expiry_tasks, "HttpIdentityDirectory", make_directory)
    monkeypatch.setattr(expiry_tasks, "settings", settings)
    return sessions


class TestExpireOverdueTask:
    """Test expire_overdue_instances."""

    def test_expires_overdue_instances(self, worker_env, orchestrator, travel_module, clock):
        clock.now = datetime(2001, 1, 1, 9, 0)
        overdue = orchestrator.submit(travel_module.id, "REQ-HIGH", "alice")
        no_deadline = orchestrator.submit(travel_module.id, "REQ-LOW", "alice")

        result = expire_overdue_instances.apply(kwargs={"limit": 10}).get()

        assert result == {"expired": [overdue["id"]], "count": 1}
        assert orchestrator.get_instance(overdue["id"])["status"] == "expired"
        assert orchestrator.get_instance(no_deadline["id"])["status"] == "pending"

    def test_nothing_due(self, worker_env):
        assert expire_overdue_instances.apply().get() == {"expired": [], "count": 0}

    def test_directory_client_closed_after_sweep(self, worker_env, directories):
        expire_overdue_instances.apply().get()

        assert len(directories) == 1
        assert directories[0].closed is True

    def test_session_and_client_closed_after_failure(self, worker_env, directories, monkeypatch):
        def broken_sweep(self, **kwargs):
            raise ValueError("corrupt row")

        monkeypatch.setattr(ApprovalOrchestrator, "expire_overdue", broken_sweep)

        with pytest.raises(ValueError):
            expire_overdue_instances.apply().get()
        assert len(worker_env) == 1
        assert worker_env[0].get_transaction() is None
        assert directories[0].closed is True

    def test_unexpected_error_not_retried(self, worker_env, monkeypatch):
        def broken_sweep(self, **kwargs):
            raise ValueError("connection reset while parsing row")

        monkeypatch.setattr(ApprovalOrchestrator, "expire_overdue", broken_sweep)

        with pytest.raises(ValueError):
            expire_overdue_instances.apply().get()
        assert len(worker_env) == 1

    @pytest.mark.parametrize("error", [
        DirectoryUnavailable("directory down"),
        OperationalError("SELECT 1", {}, Exception("server closed the connection")),
    ])
    def test_transient_errors_retried(self, worker_env, directories, monkeypatch, error):
        def flaky_sweep(self, **kwargs):
            raise error

        monkeypatch.setattr(ApprovalOrchestrator, "expire_overdue", flaky_sweep)

        with pytest.raises(type(error)):
            expire_overdue_instances.apply().get()
        assert len(worker_env) > 1
        assert all(d.closed for d in directories)


class TestBeatSchedule:
    """The sweep runs on a fixed interval, never one timer per instance."""

    def test_sweep_is_scheduled(self):
        entry = celery_app.conf.beat_schedule["expire-overdue-approvals"]
        assert entry["task"] == expire_overdue_instances.name
        assert entry["schedule"] > 0

    def test_sweep_routed_to_expiry_queue(self):
        routes = celery_app.conf.task_routes
        assert routes[expire_overdue_instances.name] == {"queue": "expiry"}
