from __future__ import annotations

from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import soup_directory.core.security as security
from soup_directory.core.config import get_settings
from soup_directory.main import app
from soup_directory.services.repository import get_repository
from soup_directory.services.store import InMemoryRepository

ADMIN_ID = "11111111-1111-1111-1111-111111111111"
OWNER_ID = "22222222-2222-2222-2222-222222222222"
STRANGER_ID = "44444444-4444-4444-4444-444444444444"

USERS: dict[str, dict[str, Any]] = {
    "admin-token": {"id": ADMIN_ID, "app_metadata": {"roles": ["user", "admin"]}},
    "owner-token": {"id": OWNER_ID, "email": "owner@example.com", "app_metadata": {"role": "user"}},
    # user_metadata is user-editable and must not grant admin.
    "stranger-token": {"id": STRANGER_ID, "app_metadata": {}, "user_metadata": {"role": "admin"}},
}

ADMIN = {"Authorization": "Bearer admin-token"}
OWNER = {"Authorization": "Bearer owner-token"}
STRANGER = {"Authorization": "Bearer stranger-token"}


@pytest.fixture
def repository() -> InMemoryRepository:
    repo = InMemoryRepository()
    repo.add_restaurant(id="r-1", name="Pho Real", city="Seattle", state="WA")
    return repo


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, repository: InMemoryRepository) -> TestClient:
    monkeypatch.setenv("SD_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SD_SUPABASE_ANON_KEY", "anon-key")
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = USERS.get(token)
        if user is None:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()


def _claim(client: TestClient, **evidence: Any) -> dict[str, Any]:
    response = client.post("/claims", json={"restaurantId": "r-1", "evidence": evidence}, headers=OWNER)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_claim_snapshots_contact_details(client: TestClient) -> None:
    claim = _claim(client, phone="555-0100")

    assert claim["status"] == "pending"
    assert claim["restaurantId"] == "r-1"
    assert claim["userId"] == OWNER_ID
    assert claim["evidence"] == {
        "phone": "555-0100",
        "account_email": "owner@example.com",
        "restaurant_name": "Pho Real",
    }


def test_duplicate_open_claim_is_400(client: TestClient) -> None:
    _claim(client)

    response = client.post("/claims", json={"restaurantId": "r-1"}, headers=OWNER)

    assert response.status_code == 400
    assert response.json()["detail"] == "an open claim already exists for this restaurant"


def test_claim_for_unknown_restaurant_is_404(client: TestClient) -> None:
    response = client.post("/claims", json={"restaurantId": "nope"}, headers=OWNER)
    assert response.status_code == 404


def test_user_metadata_role_does_not_grant_admin(client: TestClient) -> None:
    claim_id = _claim(client)["id"]

    assert client.post(f"/admin/claims/{claim_id}/approve", headers=STRANGER).status_code == 403


def test_approve_claim_transfers_ownership(client: TestClient, repository: InMemoryRepository) -> None:
    claim_id = _claim(client)["id"]

    pending = client.get("/admin/claims", params={"status": "pending"}, headers=ADMIN)
    assert [row["id"] for row in pending.json()] == [claim_id]

    response = client.post(f"/admin/claims/{claim_id}/approve", headers=ADMIN)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["claim"]["status"] == "approved"
    assert body["claim"]["reviewedBy"] == ADMIN_ID
    assert body["restaurant"]["ownerId"] == OWNER_ID
    assert body["restaurant"]["isVerified"] is True
    assert body["restaurant"]["ownerOrgId"] in repository.orgs

    again = client.post(f"/admin/claims/{claim_id}/deny", headers=ADMIN)
    assert again.status_code == 400
    assert again.json()["detail"] == "claim has already been processed"


def test_request_info_resubmit_and_deny(client: TestClient) -> None:
    claim_id = _claim(client, phone="555", note="old")["id"]

    info = client.post(f"/admin/claims/{claim_id}/request-info", json={"notes": "need proof"}, headers=ADMIN)
    assert info.status_code == 200
    assert info.json()["status"] == "needs_more_info"
    assert info.json()["decisionNotes"] == "need proof"

    blocked = client.post(f"/admin/claims/{claim_id}/approve", headers=ADMIN)
    assert blocked.status_code == 400

    assert client.post(f"/claims/{claim_id}/resubmit", json={"evidence": {}}, headers=STRANGER).status_code == 404

    resubmitted = client.post(f"/claims/{claim_id}/resubmit", json={"evidence": {"license": "WA-123"}}, headers=OWNER)
    assert resubmitted.status_code == 200
    assert resubmitted.json()["status"] == "pending"
    assert resubmitted.json()["evidence"] == {"license": "WA-123", "restaurant_name": "Pho Real"}

    denied = client.post(f"/admin/claims/{claim_id}/deny", json={"notes": "not convinced"}, headers=ADMIN)
    assert denied.status_code == 200
    assert denied.json()["status"] == "denied"

    mine = client.get("/claims", headers=OWNER)
    assert [row["status"] for row in mine.json()] == ["denied"]
    assert client.get("/claims", headers=STRANGER).json() == []
