"""Tests for API dependency helpers and domain exception mapping."""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from recordkeeper.api.dependencies import get_admin_user
from recordkeeper.api.exception_handlers import register_exception_handlers
from recordkeeper.domain.exceptions import (
    BusinessRuleViolation,
    ConfigurationError,
    EntityNotFoundError,
    TransientConflictError,
    ValidationError,
)


class TestGetAdminUser:
    def test_returns_trimmed_header(self) -> None:
        assert get_admin_user("  admin-1 ") == "admin-1"

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_header_is_401(self, header: str | None) -> None:
        with pytest.raises(HTTPException) as exc_info:
            get_admin_user(header)
        assert exc_info.value.status_code == 401


class TestExceptionHandlers:
    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        register_exception_handlers(app)
        errors = {
            "validation": ValidationError("Invalid year: 'x'", field="year"),
            "not-found": EntityNotFoundError("Canonical album", "abc"),
            "rule": BusinessRuleViolation("Album exists in albums table - not orphaned"),
            "conflict": TransientConflictError("retry", operation="album_merge"),
            "config": ConfigurationError("no transactions"),
        }

        @app.get("/raise/{kind}")
        async def raise_error(kind: str) -> None:
            raise errors[kind]

        return TestClient(app)

    @pytest.mark.parametrize(
        "kind, status_code",
        [("validation", 422), ("not-found", 404), ("rule", 400), ("conflict", 409), ("config", 503)],
    )
    def test_status_codes(self, client: TestClient, kind: str, status_code: int) -> None:
        assert client.get(f"/raise/{kind}").status_code == status_code

    def test_conflict_is_marked_retryable(self, client: TestClient) -> None:
        assert client.get("/raise/conflict").json() == {"detail": "retry", "retryable": True}

    def test_not_found_names_the_entity(self, client: TestClient) -> None:
        body = client.get("/raise/not-found").json()
        assert body["entity_type"] == "Canonical album"
        assert body["entity_id"] == "abc"
        assert body["detail"] == "Canonical album abc not found"
