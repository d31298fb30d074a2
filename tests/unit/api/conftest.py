"""API fixtures: the app wired to the test database and in-memory collaborators."""

import pytest
from fastapi.testclient import TestClient

from approvalflow.api.deps import get_db, get_directory, get_intake
from approvalflow.api.main import app
from approvalflow.core.config import get_settings


@pytest.fixture
def client(session_factory, directory, intake, settings):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_directory] = lambda: directory
    app.dependency_overrides[get_intake] = lambda: intake
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()
