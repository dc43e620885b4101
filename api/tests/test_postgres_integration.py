from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import soup_directory.core.security as security
from soup_directory.core.config import get_settings
from soup_directory.main import app
from soup_directory.services.repository import get_repository

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"
ADMIN_ID = "11111111-1111-1111-1111-111111111111"
USER_ID = "33333333-3333-3333-3333-333333333333"
USERS: dict[str, dict[str, Any]] = {
    "admin-token": {"id": ADMIN_ID, "app_metadata": {"role": "admin"}},
    "user-token": {"id": USER_ID, "email": "user@example.com", "app_metadata": {"role": "user"}},
}
ADMIN = {"Authorization": "Bearer admin-token"}
USER = {"Authorization": "Bearer user-token"}


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("SD_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require SD_DATABASE_URL or DATABASE_URL")
    _run(_apply_schema(url))
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_truncate_tables(database_url))


@pytest.fixture
def api_client(database_url: str, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("SD_DATABASE_URL", database_url)
    monkeypatch.setenv("SD_STORAGE_BACKEND", "postgres")
    monkeypatch.setenv("SD_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SD_SUPABASE_ANON_KEY", "anon-key")
    get_settings.cache_clear()
    get_repository.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = USERS.get(token)
        if user is None:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)

    with TestClient(app) as client:
        yield client

    get_repository.cache_clear()
    get_settings.cache_clear()


def test_submission_approval_claim_and_search_flow(api_client: TestClient, database_url: str) -> None:
    created = api_client.post(
        "/submissions",
        json={
            "restaurantName": "Broth Bar",
            "address": "1 Main St",
            "city": "Seattle",
            "state": "WA",
            "contactName": "Dana",
            "contactEmail": "dana@example.com",
        },
        headers=USER,
    )
    assert created.status_code == 201, created.text
    submission_id = created.json()["submissionId"]

    approved = api_client.post(f"/admin/submissions/{submission_id}/approve", headers=ADMIN)
    assert approved.status_code == 200, approved.text
    restaurant = approved.json()["restaurant"]
    assert restaurant["status"] == "live"
    assert restaurant["slug"].startswith("broth-bar-seattle-wa-")

    again = api_client.post(f"/admin/submissions/{submission_id}/approve", headers=ADMIN)
    assert again.status_code == 400
    assert api_client.patch(f"/submissions/{submission_id}", json={"city": "Phoenix"}, headers=USER).status_code == 404
    assert _run(_fetchval(database_url, "select count(*) from restaurants")) == 1

    _run(_add_soup(database_url, restaurant["id"], "Pho Soup"))

    search = api_client.get("/restaurants", params={"soupType": "pho", "city": "seattle"}).json()
    assert [row["id"] for row in search["restaurants"]] == [restaurant["id"]]
    assert search["totalCount"] == 1
    assert search["restaurants"][0]["soups"][0]["soupType"] == "Pho Soup"

    nowhere = api_client.get("/restaurants", params={"city": "Nowhereville", "state": "ZZ"}).json()
    assert nowhere == {"restaurants": [], "totalCount": 0, "featuredFallback": False}

    counts = api_client.get("/soup-types/counts").json()
    assert counts["counts"]["pho"] == 1
    assert counts["counts"]["pho-soup"] == 1

    claim = api_client.post("/claims", json={"restaurantId": restaurant["id"]}, headers=USER)
    assert claim.status_code == 201, claim.text
    duplicate = api_client.post("/claims", json={"restaurantId": restaurant["id"]}, headers=USER)
    assert duplicate.status_code == 400

    claim_id = claim.json()["id"]
    claim_approved = api_client.post(f"/admin/claims/{claim_id}/approve", headers=ADMIN)
    assert claim_approved.status_code == 200, claim_approved.text
    owned = claim_approved.json()["restaurant"]
    assert owned["ownerId"] == USER_ID
    assert owned["isVerified"] is True
    assert owned["ownerOrgId"]

    requested = api_client.post(f"/submissions/{submission_id}/request-delete", json={"reason": "closed"}, headers=USER)
    assert requested.status_code == 200
    removed = api_client.post(f"/admin/submissions/{submission_id}/remove", headers=ADMIN)
    assert removed.status_code == 200, removed.text
    assert removed.json()["restaurant"]["status"] == "removed"
    assert api_client.get(f"/restaurants/{restaurant['id']}").status_code == 404

    events = api_client.get(
        "/admin/audit-events",
        params={"entityType": "restaurant_submission", "entityId": submission_id},
        headers=ADMIN,
    ).json()
    assert [event["eventType"] for event in events] == [
        "submission_removed",
        "deletion_requested",
        "submission_approved",
        "submission_created",
    ]


def test_claim_resubmission_replaces_evidence(api_client: TestClient) -> None:
    created = api_client.post(
        "/submissions",
        json={
            "restaurantName": "Pho Real",
            "address": "2 Pine St",
            "city": "Seattle",
            "state": "WA",
            "contactName": "Lee",
            "contactEmail": "lee@example.com",
        },
        headers=USER,
    )
    submission_id = created.json()["submissionId"]
    approved = api_client.post(f"/admin/submissions/{submission_id}/approve", headers=ADMIN)
    restaurant_id = approved.json()["restaurant"]["id"]

    claim = api_client.post(
        "/claims",
        json={"restaurantId": restaurant_id, "evidence": {"phone": "555", "note": "old"}},
        headers=USER,
    ).json()
    claim_id = claim["id"]
    info = api_client.post(f"/admin/claims/{claim_id}/request-info", json={"notes": "need proof"}, headers=ADMIN)
    assert info.status_code == 200

    resubmitted = api_client.post(f"/claims/{claim_id}/resubmit", json={"evidence": {"license": "WA-1"}}, headers=USER)
    assert resubmitted.status_code == 200, resubmitted.text
    assert resubmitted.json()["status"] == "pending"
    assert resubmitted.json()["evidence"] == {"license": "WA-1", "restaurant_name": "Pho Real"}


def test_malformed_ids_are_404(api_client: TestClient) -> None:
    assert api_client.get("/restaurants/not-a-uuid").status_code == 404
    assert api_client.post("/admin/submissions/not-a-uuid/approve", headers=ADMIN).status_code == 404
    assert api_client.post("/admin/claims/not-a-uuid/deny", headers=ADMIN).status_code == 404


async def _apply_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    finally:
        await conn.close()


async def _truncate_tables(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(
            """
            truncate table
              audit_events,
              claims,
              restaurant_submissions,
              soups,
              restaurants,
              org_members,
              orgs
            restart identity cascade
            """
        )
    finally:
        await conn.close()


async def _fetchval(database_url: str, query: str) -> Any:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetchval(query)
    finally:
        await conn.close()


async def _add_soup(database_url: str, restaurant_id: str, soup_type: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(
            "insert into soups (restaurant_id, soup_type, name) values ($1::uuid, $2, $2)",
            restaurant_id,
            soup_type,
        )
    finally:
        await conn.close()
