from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from soup_directory.services.directory import RestaurantPredicate
from soup_directory.services.errors import (
    RepositoryIntegrityError,
    RepositoryInvalidStateError,
    RepositoryNotFoundError,
)
from soup_directory.services.lifecycle import (
    ClaimAction,
    ClaimStatus,
    RestaurantAction,
    SubmissionAction,
    ensure_deletion_requestable,
    ensure_removal_requested,
    ensure_submission_deletable,
    ensure_submission_editable,
    next_claim_status,
    next_restaurant_status,
    next_submission_status,
)
from soup_directory.services.soup_types import slug_variants, slugify_soup_type
from soup_directory.services.submissions import (
    SLUG_ALLOCATION_ATTEMPTS,
    SUBMISSION_FIELDS,
    apply_submission_patch,
    build_restaurant_from_submission,
    build_restaurant_slug,
    normalize_claim_evidence,
    normalize_submission_create,
)

logger = logging.getLogger(__name__)

OPEN_CLAIM_STATUSES = frozenset({ClaimStatus.PENDING.value, ClaimStatus.NEEDS_MORE_INFO.value})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value)


def _page(rows: list[dict[str, Any]], limit: int, offset: int) -> list[dict[str, Any]]:
    return copy.deepcopy(rows[offset : offset + limit])


def _sort_value(restaurant: Mapping[str, Any], sort_by: str) -> Any:
    if sort_by == "name":
        return str(restaurant.get("name") or "").lower()
    if sort_by == "price_range":
        value = restaurant.get("price_range")
        return len(value) if value else None
    return restaurant.get(sort_by)


class InMemoryRepository:
    """Process-local repository with the same contract as the Postgres one.

    Each mutating call works on copies under one lock and only writes them back
    once every check has passed, so a failed moderation action leaves no
    partial state behind.
    """

    soup_filter_is_exact = True

    def __init__(self, *, slug_token_factory: Callable[[], str] | None = None) -> None:
        self.submissions: dict[str, dict[str, Any]] = {}
        self.restaurants: dict[str, dict[str, Any]] = {}
        self.soups: dict[str, dict[str, Any]] = {}
        self.claims: dict[str, dict[str, Any]] = {}
        self.orgs: dict[str, dict[str, Any]] = {}
        self.org_members: list[dict[str, Any]] = []
        self.audit_events: list[dict[str, Any]] = []
        self.slug_token_factory = slug_token_factory
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    # -- seeding ---------------------------------------------------------

    def add_restaurant(self, **fields: Any) -> dict[str, Any]:
        now = _now()
        restaurant_id = str(fields.pop("id", None) or uuid4())
        name = fields.pop("name", "Restaurant")
        restaurant = {
            "id": restaurant_id,
            "name": name,
            "slug": fields.pop("slug", None) or f"{restaurant_id[:8]}-{name}".lower().replace(" ", "-"),
            "address": None,
            "city": None,
            "state": None,
            "zip_code": None,
            "phone": None,
            "website": None,
            "cuisine": None,
            "description": None,
            "rating": None,
            "review_count": 0,
            "price_range": None,
            "is_featured": False,
            "owner_id": None,
            "owner_org_id": None,
            "is_verified": False,
            "verified_at": None,
            "is_active": True,
            "status": "live",
            "created_at": now,
            "updated_at": now,
        }
        unknown = set(fields) - set(restaurant)
        if unknown:
            raise TypeError(f"unknown restaurant fields: {sorted(unknown)}")
        restaurant.update(fields)
        self.restaurants[restaurant_id] = restaurant
        return self._restaurant_view(restaurant)

    def add_soup(self, restaurant_id: str, soup_type: str | None, *, name: str | None = None, **fields: Any) -> dict:
        soup = {
            "id": str(uuid4()),
            "restaurant_id": restaurant_id,
            "soup_type": soup_type,
            "name": name or soup_type,
            "description": fields.get("description"),
            "price": fields.get("price"),
            "dietary_tags": list(fields.get("dietary_tags") or []),
        }
        self.soups[soup["id"]] = soup
        return copy.deepcopy(soup)

    # -- submissions -----------------------------------------------------

    async def create_submission(self, *, payload: Mapping[str, Any], submitter_id: str) -> dict[str, Any]:
        fields = normalize_submission_create(payload)
        now = _now()
        submission = {
            "id": str(uuid4()),
            "submitted_by": submitter_id,
            **fields,
            "status": "pending",
            "delete_requested": False,
            "delete_request_reason": None,
            "created_restaurant_id": None,
            "reviewed_by": None,
            "reviewed_at": None,
            "review_notes": None,
            "created_at": now,
            "updated_at": now,
        }
        async with self._lock:
            self.submissions[submission["id"]] = submission
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission["id"],
                event_type="submission_created",
                actor_id=submitter_id,
                payload={"restaurant_name": submission["restaurant_name"], "city": submission["city"]},
            )
        logger.info("submission created id=%s submitted_by=%s", submission["id"], submitter_id)
        return copy.deepcopy(submission)

    async def list_user_submissions(self, *, submitter_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in self.submissions.values() if row["submitted_by"] == submitter_id]
        return _page(self._newest_first(rows), limit, offset)

    async def list_submissions(self, *, status: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in self.submissions.values() if status is None or row["status"] == status]
        return _page(self._newest_first(rows), limit, offset)

    async def get_submission(self, *, submission_id: str, actor_user_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._owned_submission(submission_id, actor_user_id))

    async def update_submission(
        self,
        *,
        submission_id: str,
        patch: Mapping[str, Any],
        actor_user_id: str,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._owned_submission(submission_id, actor_user_id)
            ensure_submission_editable(existing["status"])
            merged = apply_submission_patch(existing, patch)
            updated = {**existing, **merged, "updated_at": _now()}
            self.submissions[submission_id] = updated
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="submission_updated",
                actor_id=actor_user_id,
                payload={"fields": sorted(key for key in patch if key in SUBMISSION_FIELDS)},
            )
            return copy.deepcopy(updated)

    async def delete_submission(self, *, submission_id: str, actor_user_id: str) -> None:
        async with self._lock:
            existing = self._owned_submission(submission_id, actor_user_id)
            ensure_submission_deletable(existing["status"])
            del self.submissions[submission_id]
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="submission_deleted",
                actor_id=actor_user_id,
                payload={"status": existing["status"]},
            )
        logger.info("submission deleted id=%s actor=%s", submission_id, actor_user_id)

    async def request_submission_deletion(
        self,
        *,
        submission_id: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._owned_submission(submission_id, actor_user_id)
            ensure_deletion_requestable(existing["status"], delete_requested=bool(existing["delete_requested"]))
            updated = {
                **existing,
                "delete_requested": True,
                "delete_request_reason": _text(reason),
                "updated_at": _now(),
            }
            self.submissions[submission_id] = updated
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="deletion_requested",
                actor_id=actor_user_id,
                payload={"reason": updated["delete_request_reason"]},
            )
            return copy.deepcopy(updated)

    # -- moderation ------------------------------------------------------

    async def approve_submission(
        self,
        *,
        submission_id: str,
        actor_user_id: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._submission(submission_id)
            next_submission_status(existing["status"], SubmissionAction.APPROVE)

            now = _now()
            restaurant_fields: dict[str, Any] | None = None
            for _ in range(SLUG_ALLOCATION_ATTEMPTS):
                slug = build_restaurant_slug(
                    name=existing["restaurant_name"],
                    city=existing["city"],
                    state=existing["state"],
                    token_factory=self.slug_token_factory,
                )
                if not any(row["slug"] == slug for row in self.restaurants.values()):
                    restaurant_fields = build_restaurant_from_submission(existing, slug=slug, now=now)
                    break
                logger.warning("restaurant slug collision slug=%s; retrying", slug)
            if restaurant_fields is None:
                raise RepositoryIntegrityError("could not allocate a unique restaurant slug")

            restaurant = {
                "id": str(uuid4()),
                "description": None,
                "rating": None,
                "review_count": 0,
                "price_range": None,
                "is_featured": False,
                "owner_org_id": None,
                "created_at": now,
                "updated_at": now,
                **restaurant_fields,
            }
            approved = {
                **existing,
                "status": "approved",
                "reviewed_by": actor_user_id,
                "reviewed_at": now,
                "review_notes": _text(notes) or existing["review_notes"],
                "delete_requested": False,
                "delete_request_reason": None,
                "created_restaurant_id": restaurant["id"],
                "updated_at": now,
            }

            self.restaurants[restaurant["id"]] = restaurant
            self.submissions[submission_id] = approved
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="submission_approved",
                actor_id=actor_user_id,
                payload={"restaurant_id": restaurant["id"], "slug": restaurant["slug"]},
            )
            self._record_audit_event(
                entity_type="restaurant",
                entity_id=restaurant["id"],
                event_type="restaurant_published",
                actor_id=actor_user_id,
                payload={"submission_id": submission_id, "is_verified": restaurant["is_verified"]},
            )
        logger.info(
            "submission approved id=%s restaurant_id=%s actor=%s",
            submission_id,
            restaurant["id"],
            actor_user_id,
        )
        return {"restaurant": self._restaurant_view(restaurant), "submission": copy.deepcopy(approved)}

    async def reject_submission(
        self,
        *,
        submission_id: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._submission(submission_id)
            next_submission_status(existing["status"], SubmissionAction.REJECT)
            now = _now()
            rejected = {
                **existing,
                "status": "rejected",
                "review_notes": _text(reason),
                "reviewed_by": actor_user_id,
                "reviewed_at": now,
                "updated_at": now,
            }
            self.submissions[submission_id] = rejected
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="submission_rejected",
                actor_id=actor_user_id,
                payload={"reason": rejected["review_notes"]},
            )
        logger.info("submission rejected id=%s actor=%s", submission_id, actor_user_id)
        return copy.deepcopy(rejected)

    async def remove_submission(self, *, submission_id: str, actor_user_id: str) -> dict[str, Any]:
        async with self._lock:
            existing = self._submission(submission_id)
            ensure_removal_requested(delete_requested=bool(existing["delete_requested"]))
            next_submission_status(existing["status"], SubmissionAction.REMOVE)

            now = _now()
            restaurant: dict[str, Any] | None = None
            restaurant_id = existing["created_restaurant_id"]
            current = self.restaurants.get(restaurant_id) if restaurant_id else None
            if restaurant_id and current is None:
                logger.warning("submission references missing restaurant id=%s", restaurant_id)
            if current is not None:
                target = next_restaurant_status(current["status"], RestaurantAction.REMOVE)
                restaurant = {**current, "is_active": False, "status": target.value, "updated_at": now}

            removed = {
                **existing,
                "status": "removed",
                "delete_requested": False,
                "delete_request_reason": None,
                "updated_at": now,
            }

            if restaurant is not None:
                self.restaurants[restaurant["id"]] = restaurant
                self._record_audit_event(
                    entity_type="restaurant",
                    entity_id=restaurant["id"],
                    event_type="restaurant_removed",
                    actor_id=actor_user_id,
                    payload={"from_status": current["status"], "to_status": restaurant["status"]},
                )
            self.submissions[submission_id] = removed
            self._record_audit_event(
                entity_type="restaurant_submission",
                entity_id=submission_id,
                event_type="submission_removed",
                actor_id=actor_user_id,
                payload={"restaurant_id": restaurant_id, "reason": existing["delete_request_reason"]},
            )
        logger.info("submission removed id=%s actor=%s", submission_id, actor_user_id)
        return {
            "restaurant": self._restaurant_view(restaurant) if restaurant is not None else None,
            "submission": copy.deepcopy(removed),
        }

    # -- claims ----------------------------------------------------------

    async def create_claim(
        self,
        *,
        restaurant_id: str,
        user_id: str,
        evidence: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        normalized_evidence = normalize_claim_evidence(evidence)
        async with self._lock:
            restaurant = self.restaurants.get(restaurant_id)
            if not restaurant or restaurant["is_active"] is not True or restaurant["status"] != "live":
                raise RepositoryNotFoundError("restaurant not found")
            if restaurant["owner_id"] == user_id:
                raise RepositoryInvalidStateError("you already own this restaurant")
            if any(
                claim["restaurant_id"] == restaurant_id
                and claim["user_id"] == user_id
                and claim["status"] in OPEN_CLAIM_STATUSES
                for claim in self.claims.values()
            ):
                raise RepositoryInvalidStateError("an open claim already exists for this restaurant")
            if "restaurant_name" not in normalized_evidence and restaurant["name"]:
                normalized_evidence["restaurant_name"] = restaurant["name"]

            now = _now()
            claim = {
                "id": str(uuid4()),
                "restaurant_id": restaurant_id,
                "user_id": user_id,
                "status": "pending",
                "evidence": normalized_evidence,
                "reviewed_by": None,
                "reviewed_at": None,
                "decision_notes": None,
                "created_at": now,
                "updated_at": now,
            }
            self.claims[claim["id"]] = claim
            self._record_audit_event(
                entity_type="claim",
                entity_id=claim["id"],
                event_type="claim_created",
                actor_id=user_id,
                payload={"restaurant_id": restaurant_id},
            )
        logger.info("claim created id=%s restaurant_id=%s user_id=%s", claim["id"], restaurant_id, user_id)
        return copy.deepcopy(claim)

    async def list_claims(self, *, status: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in self.claims.values() if status is None or row["status"] == status]
        return _page(self._newest_first(rows), limit, offset)

    async def list_user_claims(self, *, user_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in self.claims.values() if row["user_id"] == user_id]
        return _page(self._newest_first(rows), limit, offset)

    async def approve_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._claim(claim_id)
            next_claim_status(existing["status"], ClaimAction.APPROVE)
            current = self.restaurants.get(existing["restaurant_id"])
            if current is None:
                raise RepositoryNotFoundError("restaurant not found")

            now = _now()
            pending_org: dict[str, Any] | None = None
            org_id = next(
                (member["org_id"] for member in self.org_members if member["user_id"] == existing["user_id"]),
                None,
            )
            if org_id is None:
                org_name = f"{current['name']} Organization" if current["name"] else "Restaurant Organization"
                pending_org = {"id": str(uuid4()), "name": org_name, "created_at": now}
                org_id = pending_org["id"]

            restaurant = {
                **current,
                "owner_id": existing["user_id"],
                "owner_org_id": org_id,
                "is_verified": True,
                "verified_at": now,
                "updated_at": now,
            }
            approved = {
                **existing,
                "status": "approved",
                "reviewed_by": actor_user_id,
                "reviewed_at": now,
                "decision_notes": _text(notes) or "Claim approved by administrator",
                "updated_at": now,
            }

            if pending_org is not None:
                self.orgs[pending_org["id"]] = pending_org
                self.org_members.append(
                    {"org_id": org_id, "user_id": existing["user_id"], "role_in_org": "owner", "created_at": now}
                )
            self.restaurants[restaurant["id"]] = restaurant
            self.claims[claim_id] = approved
            self._record_audit_event(
                entity_type="claim",
                entity_id=claim_id,
                event_type="claim_approved",
                actor_id=actor_user_id,
                payload={"restaurant_id": restaurant["id"], "user_id": existing["user_id"], "org_id": org_id},
            )
        logger.info("claim approved id=%s restaurant_id=%s actor=%s", claim_id, restaurant["id"], actor_user_id)
        return {"claim": copy.deepcopy(approved), "restaurant": self._restaurant_view(restaurant)}

    async def deny_claim(self, *, claim_id: str, actor_user_id: str, notes: str | None) -> dict[str, Any]:
        return await self._review_claim(
            claim_id=claim_id,
            actor_user_id=actor_user_id,
            action=ClaimAction.DENY,
            notes=_text(notes) or "Claim denied by administrator",
            event_type="claim_denied",
        )

    async def request_claim_info(self, *, claim_id: str, actor_user_id: str, notes: str | None) -> dict[str, Any]:
        return await self._review_claim(
            claim_id=claim_id,
            actor_user_id=actor_user_id,
            action=ClaimAction.REQUEST_INFO,
            notes=_text(notes),
            event_type="claim_info_requested",
        )

    async def resubmit_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        evidence: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._claim(claim_id)
            if existing["user_id"] != actor_user_id:
                raise RepositoryNotFoundError("claim not found")
            target = next_claim_status(existing["status"], ClaimAction.RESUBMIT)
            new_evidence = normalize_claim_evidence(evidence)
            if existing["evidence"].get("restaurant_name"):
                new_evidence.setdefault("restaurant_name", existing["evidence"]["restaurant_name"])
            updated = {**existing, "status": target.value, "evidence": new_evidence, "updated_at": _now()}
            self.claims[claim_id] = updated
            self._record_audit_event(
                entity_type="claim",
                entity_id=claim_id,
                event_type="claim_resubmitted",
                actor_id=actor_user_id,
                payload={"evidence_keys": sorted(new_evidence)},
            )
            return copy.deepcopy(updated)

    async def _review_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        action: ClaimAction,
        notes: str | None,
        event_type: str,
    ) -> dict[str, Any]:
        async with self._lock:
            existing = self._claim(claim_id)
            target = next_claim_status(existing["status"], action)
            now = _now()
            updated = {
                **existing,
                "status": target.value,
                "reviewed_by": actor_user_id,
                "reviewed_at": now,
                "decision_notes": notes,
                "updated_at": now,
            }
            self.claims[claim_id] = updated
            self._record_audit_event(
                entity_type="claim",
                entity_id=claim_id,
                event_type=event_type,
                actor_id=actor_user_id,
                payload={"from_status": existing["status"], "to_status": target.value, "notes": notes},
            )
        logger.info("claim %s id=%s actor=%s", action.value, claim_id, actor_user_id)
        return copy.deepcopy(updated)

    # -- restaurants and directory reads ---------------------------------

    async def get_restaurant(self, *, restaurant_id: str) -> dict[str, Any]:
        restaurant = self.restaurants.get(restaurant_id)
        if not restaurant or not self._is_visible(restaurant):
            raise RepositoryNotFoundError("restaurant not found")
        return self._restaurant_view(restaurant)

    async def get_restaurant_by_slug(self, *, slug: str) -> dict[str, Any]:
        wanted = (_text(slug) or "").lower()
        for restaurant in self.restaurants.values():
            if wanted and restaurant["slug"] == wanted and self._is_visible(restaurant):
                return self._restaurant_view(restaurant)
        raise RepositoryNotFoundError("restaurant not found")

    async def list_restaurant_ids_for_soup_types(
        self,
        *,
        raw_variants: set[str],
        slug_keys: set[str],
    ) -> set[str]:
        matched: set[str] = set()
        for soup in self.soups.values():
            soup_type = soup.get("soup_type")
            if not isinstance(soup_type, str):
                continue
            if soup_type in raw_variants:
                matched.add(soup["restaurant_id"])
                continue
            slug = slugify_soup_type(soup_type)
            if slug and slug_variants(slug) & slug_keys:
                matched.add(soup["restaurant_id"])
        return matched

    async def count_restaurants(self, predicate: RestaurantPredicate) -> int | None:
        return len(self._matching(predicate))

    async def list_restaurant_ids(self, predicate: RestaurantPredicate) -> list[str]:
        return [row["id"] for row in self._matching(predicate)]

    async def list_restaurants(
        self,
        predicate: RestaurantPredicate,
        *,
        sort_by: str,
        sort_order: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = sorted(self._matching(predicate), key=lambda row: row["id"])
        present = [row for row in rows if _sort_value(row, sort_by) is not None]
        missing = [row for row in rows if _sort_value(row, sort_by) is None]
        present.sort(key=lambda row: _sort_value(row, sort_by), reverse=sort_order == "desc")
        ordered = present + missing
        return [self._restaurant_view(row) for row in ordered[offset : offset + limit]]

    async def list_visible_restaurant_locations(self, *, states: list[str]) -> list[dict[str, Any]]:
        wanted = set(states)
        return [
            {"id": row["id"], "city": row["city"], "state": row["state"]}
            for row in self.restaurants.values()
            if self._is_visible(row) and str(row.get("state") or "").strip().upper() in wanted
        ]

    async def list_soup_type_rows(self, *, states: list[str]) -> list[dict[str, Any]]:
        wanted = set(states)
        rows: list[dict[str, Any]] = []
        for soup in self.soups.values():
            restaurant = self.restaurants.get(soup["restaurant_id"])
            if not restaurant or not self._is_visible(restaurant):
                continue
            if str(restaurant.get("state") or "").strip().upper() not in wanted:
                continue
            rows.append(
                {
                    "soup_type": soup["soup_type"],
                    "restaurant_id": restaurant["id"],
                    "city": restaurant["city"],
                    "state": restaurant["state"],
                }
            )
        return rows

    # -- audit -----------------------------------------------------------

    async def list_audit_events(
        self,
        *,
        entity_type: str | None,
        entity_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = [
            event
            for event in self.audit_events
            if (entity_type is None or event["entity_type"] == entity_type)
            and (entity_id is None or event["entity_id"] == entity_id)
        ]
        rows.sort(key=lambda event: event["id"], reverse=True)
        return _page(rows, limit, offset)

    def _record_audit_event(
        self,
        *,
        entity_type: str,
        entity_id: str,
        event_type: str,
        actor_id: str | None,
        payload: dict[str, Any],
    ) -> None:
        self.audit_events.append(
            {
                "id": len(self.audit_events) + 1,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "event_type": event_type,
                "actor_id": actor_id,
                "payload": copy.deepcopy(payload),
                "created_at": _now(),
            }
        )

    # -- helpers ---------------------------------------------------------

    def _submission(self, submission_id: str) -> dict[str, Any]:
        submission = self.submissions.get(submission_id)
        if not submission:
            raise RepositoryNotFoundError("submission not found")
        return submission

    def _owned_submission(self, submission_id: str, actor_user_id: str) -> dict[str, Any]:
        submission = self.submissions.get(submission_id)
        if not submission or submission["submitted_by"] != actor_user_id:
            raise RepositoryNotFoundError("submission not found")
        return submission

    def _claim(self, claim_id: str) -> dict[str, Any]:
        claim = self.claims.get(claim_id)
        if not claim:
            raise RepositoryNotFoundError("claim not found")
        return claim

    def _matching(self, predicate: RestaurantPredicate) -> list[dict[str, Any]]:
        return [row for row in self.restaurants.values() if predicate.matches(row)]

    def _restaurant_view(self, restaurant: Mapping[str, Any]) -> dict[str, Any]:
        view = copy.deepcopy(dict(restaurant))
        view["soups"] = [copy.deepcopy(soup) for soup in self.soups.values() if soup["restaurant_id"] == view["id"]]
        return view

    @staticmethod
    def _is_visible(restaurant: Mapping[str, Any]) -> bool:
        return restaurant.get("is_active") is True and restaurant.get("status") == "live"

    @staticmethod
    def _newest_first(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        ordered = sorted(rows, key=lambda row: row["id"])
        ordered.sort(key=lambda row: row["created_at"], reverse=True)
        return ordered
