"""Fixtures for API integration tests."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from recordkeeper.config import Settings
from recordkeeper.main import create_app


# Hey future me - TestClient as a context manager runs the lifespan, so app.state gets the
# real Database, response cache and invalidation dispatcher. auto_create_tables is on in
# the test settings, seed_sync() writes through its own short-lived engine.
@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-User": "admin-1"}
