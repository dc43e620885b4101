from __future__ import annotations

from datetime import datetime, timezone

import pytest

from soup_directory.services.errors import RepositoryValidationError
from soup_directory.services.submissions import (
    apply_submission_patch,
    build_restaurant_from_submission,
    build_restaurant_slug,
    normalize_claim_evidence,
    normalize_submission_create,
)


def _payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "restaurant_name": "  Broth Bar ",
        "address": "1 Main St",
        "city": "Seattle",
        "state": "wa",
        "contact_name": "Dana",
        "contact_email": "Dana@Example.COM ",
        "soup_tags": [" Pho ", "", "Pho", "Ramen"],
        "website": "   ",
    }
    payload.update(overrides)
    return payload


def test_normalize_submission_create_trims_and_normalizes() -> None:
    fields = normalize_submission_create(_payload())

    assert fields["restaurant_name"] == "Broth Bar"
    assert fields["state"] == "WA"
    assert fields["contact_email"] == "dana@example.com"
    assert fields["soup_tags"] == ["Pho", "Ramen"]
    assert fields["website"] is None
    assert fields["is_restaurant_owner"] is False


@pytest.mark.parametrize(
    ("column", "public_name"),
    [
        ("restaurant_name", "restaurantName"),
        ("address", "address"),
        ("city", "city"),
        ("state", "state"),
        ("contact_name", "contactName"),
        ("contact_email", "contactEmail"),
    ],
)
def test_normalize_submission_create_reports_missing_field(column: str, public_name: str) -> None:
    with pytest.raises(RepositoryValidationError, match=f"missing required field: {public_name}$"):
        normalize_submission_create(_payload(**{column: "   "}))


def test_missing_restaurant_name_is_reported_first() -> None:
    payload = _payload()
    payload.pop("restaurant_name")
    payload.pop("city")
    with pytest.raises(RepositoryValidationError, match="restaurantName"):
        normalize_submission_create(payload)


def test_state_must_be_two_letters() -> None:
    with pytest.raises(RepositoryValidationError, match="2-letter"):
        normalize_submission_create(_payload(state="Washington"))


def test_email_must_contain_at_sign() -> None:
    with pytest.raises(RepositoryValidationError, match="valid contact email"):
        normalize_submission_create(_payload(contact_email="dana.example.com"))


def test_apply_submission_patch_keeps_absent_and_null_fields() -> None:
    existing = normalize_submission_create(_payload(phone="555-0100"))

    merged = apply_submission_patch(existing, {"city": " Phoenix ", "phone": None, "state": "az"})

    assert merged["city"] == "Phoenix"
    assert merged["state"] == "AZ"
    assert merged["phone"] == "555-0100"
    assert merged["restaurant_name"] == "Broth Bar"


def test_apply_submission_patch_blanks_optional_but_not_required_fields() -> None:
    existing = normalize_submission_create(_payload(phone="555-0100"))

    assert apply_submission_patch(existing, {"phone": "  "})["phone"] is None
    with pytest.raises(RepositoryValidationError, match="contactName"):
        apply_submission_patch(existing, {"contact_name": ""})


def test_apply_submission_patch_ignores_unknown_fields() -> None:
    existing = normalize_submission_create(_payload())
    merged = apply_submission_patch(existing, {"status": "approved"})
    assert "status" not in merged


def test_build_restaurant_slug_uses_name_city_state_and_token() -> None:
    slug = build_restaurant_slug(
        name="Broth & Bread",
        city="San Diego",
        state="CA",
        token_factory=lambda: "abcdef123456",
    )
    assert slug == "broth-bread-san-diego-ca-abcdef"


def test_build_restaurant_slug_random_token_differs() -> None:
    first = build_restaurant_slug(name="Pho King", city="Seattle", state="WA")
    second = build_restaurant_slug(name="Pho King", city="Seattle", state="WA")
    assert first.startswith("pho-king-seattle-wa-")
    assert len(first.rsplit("-", 1)[1]) == 6
    assert first != second


def test_build_restaurant_from_owner_submission_is_verified() -> None:
    now = datetime(2026, 1, 2, tzinfo=timezone.utc)
    submission = {**normalize_submission_create(_payload(is_restaurant_owner=True)), "submitted_by": "user-1"}

    restaurant = build_restaurant_from_submission(submission, slug="broth-bar", now=now)

    assert restaurant["status"] == "live"
    assert restaurant["is_active"] is True
    assert restaurant["is_verified"] is True
    assert restaurant["owner_id"] == "user-1"
    assert restaurant["verified_at"] == now


def test_build_restaurant_from_community_submission_has_no_owner() -> None:
    now = datetime(2026, 1, 2, tzinfo=timezone.utc)
    submission = {**normalize_submission_create(_payload()), "submitted_by": "user-1"}

    restaurant = build_restaurant_from_submission(submission, slug="broth-bar", now=now)

    assert restaurant["is_verified"] is False
    assert restaurant["owner_id"] is None
    assert restaurant["verified_at"] is None


def test_normalize_claim_evidence() -> None:
    assert normalize_claim_evidence(None) == {}
    assert normalize_claim_evidence({" phone ": " 555 ", "note": "  ", "": "x", "years": 3}) == {
        "phone": "555",
        "years": 3,
    }
