"""Integration tests for the album reconciliation admin endpoints."""

from fastapi.testclient import TestClient

STREAMING_ID = "6dVIqQ8qmQ5GBnJ9shOYGE"
YEAR = 2024


async def _seed_duplicates(seed) -> dict[str, str]:
    alice = await seed.user("alice", contributor_years=[YEAR])
    bob = await seed.user("bob", contributor_years=[YEAR])
    alice_list = await seed.user_list(alice, YEAR)
    bob_list = await seed.user_list(bob, YEAR)
    await seed.album("manual-abc", "Radiohead", "OK Computer")
    await seed.album(STREAMING_ID, "Radiohead", "OK Computer (Deluxe Edition)")
    await seed.item(alice_list, 1, "manual-abc", comments="favourite")
    await seed.item(bob_list, 2, STREAMING_ID)
    return {"alice": alice, "bob": bob, "alice_list": alice_list, "bob_list": bob_list}


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# Hey future me - empty DB means empty groups, not an error.
def test_duplicates_empty_year(client: TestClient) -> None:
    response = client.get("/api/admin/albums/duplicates", params={"year": YEAR})
    assert response.status_code == 200

    payload = response.json()
    assert payload["year"] == YEAR
    assert payload["duplicate_groups"] == 0
    assert payload["duplicates"] == []


def test_year_is_required(client: TestClient) -> None:
    response = client.get("/api/admin/albums/duplicates")
    assert response.status_code == 422


def test_out_of_range_year_is_validation_error(client: TestClient) -> None:
    response = client.get("/api/admin/albums/audit", params={"year": 1800})
    assert response.status_code == 422
    assert response.json()["field"] == "year"


def test_audit_flow(client: TestClient, seed_sync, admin_headers) -> None:
    seed_sync(_seed_duplicates)

    duplicates = client.get("/api/admin/albums/duplicates", params={"year": YEAR}).json()
    assert duplicates["duplicate_groups"] == 1

    report = client.get("/api/admin/albums/audit", params={"year": YEAR}).json()
    assert report["summary"]["total_changes_needed"] == 1
    assert report["proposed_changes"][0]["canonical_album_id"] == STREAMING_ID

    diagnose = client.get("/api/admin/albums/audit/diagnose", params={"year": YEAR})
    assert diagnose.status_code == 200
    assert diagnose.json()["albums_missed_by_basic_normalization"] == 1

    fix = client.post(
        "/api/admin/albums/audit/fix", json={"year": YEAR}, headers=admin_headers
    )
    assert fix.status_code == 200
    assert fix.json()["success"] is True
    assert fix.json()["changes_applied"] == 1

    preview = client.get("/api/admin/albums/audit/preview", params={"year": YEAR}).json()
    assert preview["changes_required"] is False


def test_fix_requires_admin_header(client: TestClient) -> None:
    response = client.post("/api/admin/albums/audit/fix", json={"year": YEAR})
    assert response.status_code == 401


def test_merge_requires_admin_header(client: TestClient) -> None:
    response = client.post(
        "/api/admin/albums/merge",
        json={"manual_id": "manual-abc", "canonical_id": STREAMING_ID},
    )
    assert response.status_code == 401


def test_merge_rejects_non_manual_id(client: TestClient, admin_headers) -> None:
    response = client.post(
        "/api/admin/albums/merge",
        json={"manual_id": "spotify-123", "canonical_id": STREAMING_ID},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert "Invalid manual album ID" in response.json()["detail"]


def test_merge_unknown_canonical_is_404(client: TestClient, seed_sync, admin_headers) -> None:
    seed_sync(_seed_duplicates)

    response = client.post(
        "/api/admin/albums/merge",
        json={"manual_id": "manual-abc", "canonical_id": "nonexistent-id"},
        headers=admin_headers,
    )

    assert response.status_code == 404
    assert response.json()["entity_type"] == "Canonical album"
    assert response.json()["entity_id"] == "nonexistent-id"


def test_reconcile_and_merge(client: TestClient, seed_sync, admin_headers) -> None:
    ids = seed_sync(_seed_duplicates)

    reconciliation = client.get("/api/admin/albums/reconciliation/manual").json()
    assert reconciliation["total_with_matches"] == 1
    match = reconciliation["manual_albums"][0]["matches"][0]
    assert match["album_id"] == STREAMING_ID
    assert match["confidence"] == 100

    merge = client.post(
        "/api/admin/albums/merge",
        json={"manual_id": "manual-abc", "canonical_id": STREAMING_ID},
        headers=admin_headers,
    )
    assert merge.status_code == 200
    body = merge.json()
    assert body["updated_list_items"] == 1
    assert body["affected_years"] == [YEAR]
    assert body["affected_lists"][0]["list_id"] == ids["alice_list"]

    after = client.get("/api/admin/albums/reconciliation/manual").json()
    assert after["total_manual"] == 0


def test_orphan_cleanup(client: TestClient, seed_sync, admin_headers) -> None:
    async def _seed(seed) -> None:
        alice = await seed.user("alice")
        await seed.item(await seed.user_list(alice, YEAR), 1, "manual-ghost")
        await seed.album("manual-real", "Someone", "Something")

    seed_sync(_seed)

    not_orphaned = client.delete("/api/admin/albums/orphans/manual-real", headers=admin_headers)
    assert not_orphaned.status_code == 400

    deleted = client.delete("/api/admin/albums/orphans/manual-ghost", headers=admin_headers)
    assert deleted.status_code == 200
    assert deleted.json()["deleted_list_items"] == 1


def test_exclusions(client: TestClient, admin_headers) -> None:
    created = client.post(
        "/api/admin/albums/exclusions",
        json={"album_id_1": "manual-b", "album_id_2": "manual-a"},
        headers=admin_headers,
    )
    assert created.status_code == 200
    assert created.json() == {"album_id_1": "manual-a", "album_id_2": "manual-b", "created": True}

    self_pair = client.post(
        "/api/admin/albums/exclusions",
        json={"album_id_1": "manual-a", "album_id_2": "manual-a"},
        headers=admin_headers,
    )
    assert self_pair.status_code == 422

    listing = client.get("/api/admin/albums/exclusions").json()
    assert listing["total"] == 1
    assert listing["pairs"] == [{"album_id_1": "manual-a", "album_id_2": "manual-b"}]


def test_correlation_id_round_trip(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-ID": "audit-run-1"})
    assert response.headers["X-Correlation-ID"] == "audit-run-1"
