from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any
from uuid import uuid4

from soup_directory.services.errors import RepositoryValidationError
from soup_directory.services.soup_types import slugify_text

# (stored column, public field name) in the order validation reports them.
REQUIRED_SUBMISSION_FIELDS: tuple[tuple[str, str], ...] = (
    ("restaurant_name", "restaurantName"),
    ("address", "address"),
    ("city", "city"),
    ("state", "state"),
    ("contact_name", "contactName"),
    ("contact_email", "contactEmail"),
)
OPTIONAL_SUBMISSION_FIELDS: tuple[str, ...] = (
    "zip_code",
    "phone",
    "website",
    "cuisine",
    "contact_phone",
    "submission_notes",
)
SUBMISSION_FIELDS: tuple[str, ...] = (
    *(column for column, _ in REQUIRED_SUBMISSION_FIELDS),
    *OPTIONAL_SUBMISSION_FIELDS,
    "soup_tags",
    "is_restaurant_owner",
)

SLUG_TOKEN_LENGTH = 6
SLUG_ALLOCATION_ATTEMPTS = 5


def _required_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _normalize_state(value: Any) -> str:
    state = _required_text(value).upper()
    if len(state) != 2 or not state.isalpha():
        raise RepositoryValidationError("state must be a 2-letter abbreviation")
    return state


def _normalize_email(value: Any) -> str:
    email = _required_text(value).lower()
    if "@" not in email:
        raise RepositoryValidationError("please provide a valid contact email")
    return email


def _normalize_tags(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    tags: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        stripped = item.strip()
        if stripped and stripped not in tags:
            tags.append(stripped)
    return tags


def normalize_submission_create(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a new submission and return the columns to persist.

    Raises ``RepositoryValidationError`` naming the first missing or invalid
    field.
    """
    for column, public_name in REQUIRED_SUBMISSION_FIELDS:
        if not _required_text(payload.get(column)):
            raise RepositoryValidationError(f"missing required field: {public_name}")

    fields: dict[str, Any] = {
        "restaurant_name": _required_text(payload.get("restaurant_name")),
        "address": _required_text(payload.get("address")),
        "city": _required_text(payload.get("city")),
        "state": _normalize_state(payload.get("state")),
        "contact_name": _required_text(payload.get("contact_name")),
        "contact_email": _normalize_email(payload.get("contact_email")),
        "soup_tags": _normalize_tags(payload.get("soup_tags")),
        "is_restaurant_owner": bool(payload.get("is_restaurant_owner")),
    }
    for column in OPTIONAL_SUBMISSION_FIELDS:
        fields[column] = _optional_text(payload.get(column))
    return fields


def apply_submission_patch(existing: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Merge a partial update over an existing submission.

    Keys absent from ``patch`` (or explicitly null) keep their stored value.
    Required fields cannot be blanked; optional fields become null when blank.
    """
    merged = {column: existing.get(column) for column in SUBMISSION_FIELDS}
    public_names = dict(REQUIRED_SUBMISSION_FIELDS)

    for column, value in patch.items():
        if column not in merged or value is None:
            continue
        if column in public_names:
            if not _required_text(value):
                raise RepositoryValidationError(f"missing required field: {public_names[column]}")
            if column == "state":
                merged[column] = _normalize_state(value)
            elif column == "contact_email":
                merged[column] = _normalize_email(value)
            else:
                merged[column] = _required_text(value)
        elif column == "soup_tags":
            merged[column] = _normalize_tags(value)
        elif column == "is_restaurant_owner":
            merged[column] = bool(value)
        else:
            merged[column] = _optional_text(value)
    merged["soup_tags"] = list(merged.get("soup_tags") or [])
    merged["is_restaurant_owner"] = bool(merged.get("is_restaurant_owner"))
    return merged


def build_restaurant_slug(
    *,
    name: str | None,
    city: str | None,
    state: str | None,
    token_factory: Callable[[], str] | None = None,
) -> str:
    """Slug for a newly published restaurant: ``<name>-<city>-<state>-<token>``."""
    base = slugify_text(f"{name or 'restaurant'} {city or ''} {state or ''}") or "restaurant"
    token = (token_factory or (lambda: uuid4().hex))()[:SLUG_TOKEN_LENGTH]
    return f"{base}-{token}"


def build_restaurant_from_submission(
    submission: Mapping[str, Any],
    *,
    slug: str,
    now: datetime,
) -> dict[str, Any]:
    is_owner = bool(submission.get("is_restaurant_owner"))
    owner_id = submission.get("submitted_by") if is_owner else None
    return {
        "name": submission.get("restaurant_name"),
        "address": submission.get("address"),
        "city": submission.get("city"),
        "state": submission.get("state"),
        "zip_code": submission.get("zip_code"),
        "phone": submission.get("phone"),
        "website": submission.get("website"),
        "cuisine": submission.get("cuisine"),
        "slug": slug,
        "status": "live",
        "is_active": True,
        "is_verified": is_owner,
        "owner_id": owner_id,
        "verified_at": now if owner_id else None,
    }


def normalize_claim_evidence(evidence: Mapping[str, Any] | None) -> dict[str, Any]:
    if not evidence:
        return {}
    normalized: dict[str, Any] = {}
    for key, value in evidence.items():
        if not isinstance(key, str) or not key.strip():
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        normalized[key.strip()] = value
    return normalized
