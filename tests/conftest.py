"""Pytest configuration and shared fixtures.

Database fixtures use a file-backed SQLite database per test so several
sessions (and TestClient worker threads) can see each other's commits.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from approvalflow.core.approval import ApprovalOrchestrator
from approvalflow.core.config import Settings
from approvalflow.db import models  # noqa: F401
from approvalflow.db.base import Base
from approvalflow.db.session import build_engine
from approvalflow.services.directory import InMemoryIdentityDirectory
from approvalflow.services.intake import InMemoryRequestIntake

from tests.factories import create_flow, create_module


class FakeClock:
    """Controllable naive-UTC clock; ``on_call`` runs before each reading."""

    def __init__(self, start: datetime):
        self.now = start
        self.on_call = None

    def __call__(self) -> datetime:
        if self.on_call is not None:
            hook, self.on_call = self.on_call, None
            hook()
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings():
    """Engine settings isolated from the environment."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        administrator_role_ids="admin,auditor",
        transition_max_retries=3,
        integration_max_retries=2,
        integration_backoff_seconds=0.1,
        expiry_sweep_batch_size=50,
    )


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'approvalflow.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 5, 9, 0, 0))


@pytest.fixture
def directory():
    """
    Organisation used across tests:

    - alice (staff, sales) reports to bob; bob reports to carol
    - sam heads sales, carol heads exec
    - dana and erin hold the finance role, carol holds vp
    - frank (ops) has no superior and ops has no head
    - root holds admin
    """
    directory = InMemoryIdentityDirectory()
    directory.add_user("alice", role_id="staff", department_id="sales", immediate_superior_id="bob")
    directory.add_user("bob", role_id="manager", department_id="sales", immediate_superior_id="carol")
    directory.add_user("carol", role_id="vp", department_id="exec")
    directory.add_user("sam", role_id="head", department_id="sales", immediate_superior_id="carol")
    directory.add_user("dana", role_id="finance", department_id="finance")
    directory.add_user("erin", role_id="finance", department_id="finance")
    directory.add_user("frank", role_id="staff", department_id="ops")
    directory.add_user("root", role_id="admin")
    directory.set_department_head("sales", "sam")
    directory.set_department_head("exec", "carol")
    return directory


@pytest.fixture
def intake():
    return InMemoryRequestIntake({
        "REQ-HIGH": {"amount": 6000, "destination": "Lisbon"},
        "REQ-LOW": {"amount": 800, "destination": "Porto"},
    })


@pytest.fixture
def orchestrator(db_session, directory, intake, settings, clock):
    return ApprovalOrchestrator(db_session, directory, intake, settings=settings, clock=clock)


@pytest.fixture
def travel_module(db_session):
    """
    "Travel Request" module with:

    - Travel-High: amount > 5000, steps [superior, department head, vp]
    - Travel-Default: default flow, single superior step
    """
    module = create_module(db_session, name="Travel Request")
    create_flow(
        db_session,
        module=module,
        name="Travel-High",
        rules=[("amount", ">", "5000")],
        steps=[("immediate_superior", None), ("department_head", None), ("role", "vp")],
        timeout_seconds=3600,
    )
    create_flow(
        db_session,
        module=module,
        name="Travel-Default",
        is_default=True,
        steps=[("immediate_superior", None)],
    )
    db_session.commit()
    return module


@pytest.fixture
def finance_module(db_session):
    """Three-step flow whose last step belongs to the finance role."""
    module = create_module(db_session, name="Expense Claim")
    create_flow(
        db_session,
        module=module,
        name="Expense-Default",
        is_default=True,
        steps=[("immediate_superior", None), ("department_head", None), ("role", "finance")],
        timeout_seconds=86400,
    )
    db_session.commit()
    return module
