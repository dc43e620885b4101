from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc
from opentelemetry import trace

from soup_directory.core.config import get_settings
from soup_directory.services.directory import RestaurantPredicate
from soup_directory.services.errors import (
    RepositoryIntegrityError,
    RepositoryInvalidStateError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
)
from soup_directory.services.lifecycle import (
    ClaimAction,
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
tracer = trace.get_tracer(__name__)

DEFAULT_CLAIM_APPROVAL_NOTES = "Claim approved by administrator"
DEFAULT_CLAIM_DENIAL_NOTES = "Claim denied by administrator"

SUBMISSION_COLUMNS_SQL = """
  id::text as id,
  submitted_by::text as submitted_by,
  restaurant_name,
  address,
  city,
  state,
  zip_code,
  phone,
  website,
  cuisine,
  soup_tags,
  contact_name,
  contact_email,
  contact_phone,
  is_restaurant_owner,
  submission_notes,
  status,
  delete_requested,
  delete_request_reason,
  created_restaurant_id::text as created_restaurant_id,
  reviewed_by::text as reviewed_by,
  reviewed_at,
  review_notes,
  created_at,
  updated_at
"""

RESTAURANT_COLUMNS_SQL = """
  r.id::text as id,
  r.name,
  r.slug,
  r.address,
  r.city,
  r.state,
  r.zip_code,
  r.phone,
  r.website,
  r.cuisine,
  r.description,
  r.rating,
  r.review_count,
  r.price_range,
  r.is_featured,
  r.owner_id::text as owner_id,
  r.owner_org_id::text as owner_org_id,
  r.is_verified,
  r.verified_at,
  r.is_active,
  r.status,
  r.created_at,
  r.updated_at
"""

RESTAURANT_SOUPS_SQL = """
  coalesce(
    (
      select jsonb_agg(
        jsonb_build_object(
          'id', s.id::text,
          'restaurant_id', s.restaurant_id::text,
          'soup_type', s.soup_type,
          'name', s.name,
          'description', s.description,
          'price', s.price,
          'dietary_tags', s.dietary_tags
        )
        order by s.created_at, s.id
      )
      from soups s
      where s.restaurant_id = r.id
    ),
    '[]'::jsonb
  ) as soups
"""

CLAIM_COLUMNS_SQL = """
  id::text as id,
  restaurant_id::text as restaurant_id,
  user_id::text as user_id,
  status,
  evidence,
  reviewed_by::text as reviewed_by,
  reviewed_at,
  decision_notes,
  created_at,
  updated_at
"""

SOUP_SLUG_SQL = "trim(both '-' from regexp_replace(lower(trim(s.soup_type)), '[^a-z0-9]+', '-', 'g'))"

RESTAURANT_SORT_EXPRESSIONS = {
    "rating": "r.rating",
    "name": "lower(r.name)",
    "review_count": "r.review_count",
    "created_at": "r.created_at",
    "price_range": "length(r.price_range)",
}


class PostgresRepository:
    # Soup matching below applies the slug-variant rule in SQL.
    soup_filter_is_exact = True

    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # -- submissions -----------------------------------------------------

    async def create_submission(self, *, payload: Mapping[str, Any], submitter_id: str) -> dict[str, Any]:
        fields = normalize_submission_create(payload)
        async with self._acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    insert into restaurant_submissions (
                      submitted_by,
                      restaurant_name,
                      address,
                      city,
                      state,
                      zip_code,
                      phone,
                      website,
                      cuisine,
                      soup_tags,
                      contact_name,
                      contact_email,
                      contact_phone,
                      is_restaurant_owner,
                      submission_notes,
                      status
                    )
                    values ($1::uuid, $2, $3, $4, $5, $6, $7, $8, $9, $10::text[], $11, $12, $13, $14, $15, 'pending')
                    returning {SUBMISSION_COLUMNS_SQL}
                    """,
                    self._require_uuid(submitter_id, entity="submitter"),
                    fields["restaurant_name"],
                    fields["address"],
                    fields["city"],
                    fields["state"],
                    fields["zip_code"],
                    fields["phone"],
                    fields["website"],
                    fields["cuisine"],
                    fields["soup_tags"],
                    fields["contact_name"],
                    fields["contact_email"],
                    fields["contact_phone"],
                    fields["is_restaurant_owner"],
                    fields["submission_notes"],
                )
                submission = self._submission_row_to_dict(row)
                await self._record_audit_event(
                    conn=conn,
                    entity_type="restaurant_submission",
                    entity_id=submission["id"],
                    event_type="submission_created",
                    actor_id=submitter_id,
                    payload={"restaurant_name": submission["restaurant_name"], "city": submission["city"]},
                )
        logger.info("submission created id=%s submitted_by=%s", submission["id"], submitter_id)
        return submission

    async def list_user_submissions(self, *, submitter_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        user_id = self._parse_uuid(submitter_id)
        if user_id is None:
            return []
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select {SUBMISSION_COLUMNS_SQL}
                from restaurant_submissions
                where submitted_by = $1::uuid
                order by created_at desc, id asc
                limit $2
                offset $3
                """,
                user_id,
                limit,
                offset,
            )
        return [self._submission_row_to_dict(row) for row in rows]

    async def list_submissions(self, *, status: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select {SUBMISSION_COLUMNS_SQL}
                from restaurant_submissions
                where ($1::text is null or status = $1::text)
                order by created_at desc, id asc
                limit $2
                offset $3
                """,
                status,
                limit,
                offset,
            )
        return [self._submission_row_to_dict(row) for row in rows]

    async def get_submission(self, *, submission_id: str, actor_user_id: str) -> dict[str, Any]:
        async with self._acquire() as conn:
            row = await self._fetch_owned_submission(
                conn=conn,
                submission_id=submission_id,
                actor_user_id=actor_user_id,
                for_update=False,
            )
        return self._submission_row_to_dict(row)

    async def update_submission(
        self,
        *,
        submission_id: str,
        patch: Mapping[str, Any],
        actor_user_id: str,
    ) -> dict[str, Any]:
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_owned_submission(
                    conn=conn,
                    submission_id=submission_id,
                    actor_user_id=actor_user_id,
                    for_update=True,
                )
                ensure_submission_editable(existing["status"])
                merged = apply_submission_patch(self._submission_row_to_dict(existing), patch)
                row = await conn.fetchrow(
                    f"""
                    update restaurant_submissions
                    set
                      restaurant_name = $2,
                      address = $3,
                      city = $4,
                      state = $5,
                      zip_code = $6,
                      phone = $7,
                      website = $8,
                      cuisine = $9,
                      soup_tags = $10::text[],
                      contact_name = $11,
                      contact_email = $12,
                      contact_phone = $13,
                      is_restaurant_owner = $14,
                      submission_notes = $15,
                      updated_at = now()
                    where id = $1::uuid
                      and status = 'pending'
                    returning {SUBMISSION_COLUMNS_SQL}
                    """,
                    existing["id"],
                    merged["restaurant_name"],
                    merged["address"],
                    merged["city"],
                    merged["state"],
                    merged["zip_code"],
                    merged["phone"],
                    merged["website"],
                    merged["cuisine"],
                    merged["soup_tags"],
                    merged["contact_name"],
                    merged["contact_email"],
                    merged["contact_phone"],
                    merged["is_restaurant_owner"],
                    merged["submission_notes"],
                )
                if not row:
                    raise RepositoryInvalidStateError("pending submission changed during update")
                await self._record_audit_event(
                    conn=conn,
                    entity_type="restaurant_submission",
                    entity_id=existing["id"],
                    event_type="submission_updated",
                    actor_id=actor_user_id,
                    payload={"fields": sorted(key for key in patch if key in SUBMISSION_FIELDS)},
                )
                return self._submission_row_to_dict(row)

    async def delete_submission(self, *, submission_id: str, actor_user_id: str) -> None:
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_owned_submission(
                    conn=conn,
                    submission_id=submission_id,
                    actor_user_id=actor_user_id,
                    for_update=True,
                )
                ensure_submission_deletable(existing["status"])
                await conn.execute(
                    """
                    delete from restaurant_submissions
                    where id = $1::uuid
                    """,
                    existing["id"],
                )
                await self._record_audit_event(
                    conn=conn,
                    entity_type="restaurant_submission",
                    entity_id=existing["id"],
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
        normalized_reason = self._coerce_text(reason)
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_owned_submission(
                    conn=conn,
                    submission_id=submission_id,
                    actor_user_id=actor_user_id,
                    for_update=True,
                )
                ensure_deletion_requestable(existing["status"], delete_requested=bool(existing["delete_requested"]))
                row = await conn.fetchrow(
                    f"""
                    update restaurant_submissions
                    set
                      delete_requested = true,
                      delete_request_reason = $2,
                      updated_at = now()
                    where id = $1::uuid
                      and status = 'approved'
                      and delete_requested = false
                    returning {SUBMISSION_COLUMNS_SQL}
                    """,
                    existing["id"],
                    normalized_reason,
                )
                if not row:
                    raise RepositoryInvalidStateError("removal has already been requested for this submission")
                await self._record_audit_event(
                    conn=conn,
                    entity_type="restaurant_submission",
                    entity_id=existing["id"],
                    event_type="deletion_requested",
                    actor_id=actor_user_id,
                    payload={"reason": normalized_reason},
                )
                return self._submission_row_to_dict(row)

    # -- moderation ------------------------------------------------------

    async def approve_submission(
        self,
        *,
        submission_id: str,
        actor_user_id: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        with tracer.start_as_current_span("moderation.approve_submission"):
            async with self._acquire() as conn:
                try:
                    async with conn.transaction():
                        existing = await self._fetch_submission_for_update(conn=conn, submission_id=submission_id)
                        next_submission_status(existing["status"], SubmissionAction.APPROVE)
                        submission = self._submission_row_to_dict(existing)
                        restaurant = await self._insert_restaurant_from_submission(conn=conn, submission=submission)

                        row = await conn.fetchrow(
                            f"""
                            update restaurant_submissions
                            set
                              status = 'approved',
                              reviewed_by = $2::uuid,
                              reviewed_at = now(),
                              review_notes = coalesce($3, review_notes),
                              delete_requested = false,
                              delete_request_reason = null,
                              created_restaurant_id = $4::uuid,
                              updated_at = now()
                            where id = $1::uuid
                              and status = 'pending'
                            returning {SUBMISSION_COLUMNS_SQL}
                            """,
                            submission["id"],
                            actor_user_id,
                            self._coerce_text(notes),
                            restaurant["id"],
                        )
                        if not row:
                            # Rolls back the restaurant insert with the transaction.
                            raise RepositoryInvalidStateError("submission has already been reviewed")

                        await self._record_audit_event(
                            conn=conn,
                            entity_type="restaurant_submission",
                            entity_id=submission["id"],
                            event_type="submission_approved",
                            actor_id=actor_user_id,
                            payload={"restaurant_id": restaurant["id"], "slug": restaurant["slug"]},
                        )
                        await self._record_audit_event(
                            conn=conn,
                            entity_type="restaurant",
                            entity_id=restaurant["id"],
                            event_type="restaurant_published",
                            actor_id=actor_user_id,
                            payload={"submission_id": submission["id"], "is_verified": restaurant["is_verified"]},
                        )
                        approved = self._submission_row_to_dict(row)
                except asyncpg.PostgresError as exc:
                    logger.exception("submission approval rolled back id=%s", submission_id)
                    raise RepositoryIntegrityError("submission approval could not be committed") from exc

        logger.info(
            "submission approved id=%s restaurant_id=%s actor=%s",
            approved["id"],
            restaurant["id"],
            actor_user_id,
        )
        return {"restaurant": restaurant, "submission": approved}

    async def reject_submission(
        self,
        *,
        submission_id: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        normalized_reason = self._coerce_text(reason)
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_submission_for_update(conn=conn, submission_id=submission_id)
                next_submission_status(existing["status"], SubmissionAction.REJECT)
                row = await conn.fetchrow(
                    f"""
                    update restaurant_submissions
                    set
                      status = 'rejected',
                      review_notes = $3,
                      reviewed_by = $2::uuid,
                      reviewed_at = now(),
                      updated_at = now()
                    where id = $1::uuid
                      and status = 'pending'
                    returning {SUBMISSION_COLUMNS_SQL}
                    """,
                    existing["id"],
                    actor_user_id,
                    normalized_reason,
                )
                if not row:
                    raise RepositoryInvalidStateError("submission has already been reviewed")
                await self._record_audit_event(
                    conn=conn,
                    entity_type="restaurant_submission",
                    entity_id=existing["id"],
                    event_type="submission_rejected",
                    actor_id=actor_user_id,
                    payload={"reason": normalized_reason},
                )
        logger.info("submission rejected id=%s actor=%s", submission_id, actor_user_id)
        return self._submission_row_to_dict(row)

    async def remove_submission(self, *, submission_id: str, actor_user_id: str) -> dict[str, Any]:
        with tracer.start_as_current_span("moderation.remove_submission"):
            async with self._acquire() as conn:
                try:
                    async with conn.transaction():
                        existing = await self._fetch_submission_for_update(conn=conn, submission_id=submission_id)
                        ensure_removal_requested(delete_requested=bool(existing["delete_requested"]))
                        next_submission_status(existing["status"], SubmissionAction.REMOVE)

                        restaurant: dict[str, Any] | None = None
                        restaurant_id = existing["created_restaurant_id"]
                        if restaurant_id:
                            restaurant = await self._remove_restaurant(
                                conn=conn,
                                restaurant_id=restaurant_id,
                                actor_user_id=actor_user_id,
                            )

                        row = await conn.fetchrow(
                            f"""
                            update restaurant_submissions
                            set
                              status = 'removed',
                              delete_requested = false,
                              delete_request_reason = null,
                              updated_at = now()
                            where id = $1::uuid
                              and status = 'approved'
                              and delete_requested = true
                            returning {SUBMISSION_COLUMNS_SQL}
                            """,
                            existing["id"],
                        )
                        if not row:
                            raise RepositoryInvalidStateError("submission has not requested deletion")
                        await self._record_audit_event(
                            conn=conn,
                            entity_type="restaurant_submission",
                            entity_id=existing["id"],
                            event_type="submission_removed",
                            actor_id=actor_user_id,
                            payload={
                                "restaurant_id": restaurant_id,
                                "reason": existing["delete_request_reason"],
                            },
                        )
                        removed = self._submission_row_to_dict(row)
                except asyncpg.PostgresError as exc:
                    logger.exception("submission removal rolled back id=%s", submission_id)
                    raise RepositoryIntegrityError("submission removal could not be committed") from exc

        logger.info("submission removed id=%s actor=%s", submission_id, actor_user_id)
        return {"restaurant": restaurant, "submission": removed}

    # -- claims ----------------------------------------------------------

    async def create_claim(
        self,
        *,
        restaurant_id: str,
        user_id: str,
        evidence: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        parsed_restaurant_id = self._parse_uuid(restaurant_id)
        if parsed_restaurant_id is None:
            raise RepositoryNotFoundError("restaurant not found")
        normalized_evidence = normalize_claim_evidence(evidence)

        async with self._acquire() as conn:
            async with conn.transaction():
                restaurant = await conn.fetchrow(
                    """
                    select id::text as id, name, owner_id::text as owner_id
                    from restaurants
                    where id = $1::uuid
                      and is_active = true
                      and status = 'live'
                    """,
                    parsed_restaurant_id,
                )
                if not restaurant:
                    raise RepositoryNotFoundError("restaurant not found")
                if restaurant["owner_id"] == user_id:
                    raise RepositoryInvalidStateError("you already own this restaurant")
                if "restaurant_name" not in normalized_evidence and restaurant["name"]:
                    normalized_evidence["restaurant_name"] = restaurant["name"]

                try:
                    async with conn.transaction():
                        row = await conn.fetchrow(
                            f"""
                            insert into claims (restaurant_id, user_id, status, evidence)
                            values ($1::uuid, $2::uuid, 'pending', $3::jsonb)
                            returning {CLAIM_COLUMNS_SQL}
                            """,
                            parsed_restaurant_id,
                            self._require_uuid(user_id, entity="claimant"),
                            json.dumps(normalized_evidence),
                        )
                except pg_exc.UniqueViolationError as exc:
                    raise RepositoryInvalidStateError("an open claim already exists for this restaurant") from exc

                claim = self._claim_row_to_dict(row)
                await self._record_audit_event(
                    conn=conn,
                    entity_type="claim",
                    entity_id=claim["id"],
                    event_type="claim_created",
                    actor_id=user_id,
                    payload={"restaurant_id": claim["restaurant_id"]},
                )
        logger.info("claim created id=%s restaurant_id=%s user_id=%s", claim["id"], restaurant_id, user_id)
        return claim

    async def list_claims(self, *, status: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select {CLAIM_COLUMNS_SQL}
                from claims
                where ($1::text is null or status = $1::text)
                order by created_at desc, id asc
                limit $2
                offset $3
                """,
                status,
                limit,
                offset,
            )
        return [self._claim_row_to_dict(row) for row in rows]

    async def list_user_claims(self, *, user_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        parsed_user_id = self._parse_uuid(user_id)
        if parsed_user_id is None:
            return []
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select {CLAIM_COLUMNS_SQL}
                from claims
                where user_id = $1::uuid
                order by created_at desc, id asc
                limit $2
                offset $3
                """,
                parsed_user_id,
                limit,
                offset,
            )
        return [self._claim_row_to_dict(row) for row in rows]

    async def approve_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        with tracer.start_as_current_span("moderation.approve_claim"):
            async with self._acquire() as conn:
                try:
                    async with conn.transaction():
                        existing = await self._fetch_claim_for_update(conn=conn, claim_id=claim_id)
                        next_claim_status(existing["status"], ClaimAction.APPROVE)

                        restaurant_row = await conn.fetchrow(
                            """
                            select id::text as id, name
                            from restaurants
                            where id = $1::uuid
                            for update
                            """,
                            existing["restaurant_id"],
                        )
                        if not restaurant_row:
                            raise RepositoryNotFoundError("restaurant not found")

                        org_id = await self._ensure_owner_org(
                            conn=conn,
                            user_id=existing["user_id"],
                            restaurant_name=restaurant_row["name"],
                        )
                        await conn.execute(
                            """
                            update restaurants
                            set
                              owner_id = $2::uuid,
                              owner_org_id = $3::uuid,
                              is_verified = true,
                              verified_at = now(),
                              updated_at = now()
                            where id = $1::uuid
                            """,
                            restaurant_row["id"],
                            existing["user_id"],
                            org_id,
                        )
                        row = await conn.fetchrow(
                            f"""
                            update claims
                            set
                              status = 'approved',
                              reviewed_by = $2::uuid,
                              reviewed_at = now(),
                              decision_notes = $3,
                              updated_at = now()
                            where id = $1::uuid
                              and status = 'pending'
                            returning {CLAIM_COLUMNS_SQL}
                            """,
                            existing["id"],
                            actor_user_id,
                            self._coerce_text(notes) or DEFAULT_CLAIM_APPROVAL_NOTES,
                        )
                        if not row:
                            raise RepositoryInvalidStateError("claim has already been processed")
                        await self._record_audit_event(
                            conn=conn,
                            entity_type="claim",
                            entity_id=existing["id"],
                            event_type="claim_approved",
                            actor_id=actor_user_id,
                            payload={
                                "restaurant_id": restaurant_row["id"],
                                "user_id": existing["user_id"],
                                "org_id": org_id,
                            },
                        )
                        restaurant = await self._fetch_restaurant(conn=conn, restaurant_id=restaurant_row["id"])
                        claim = self._claim_row_to_dict(row)
                except asyncpg.PostgresError as exc:
                    logger.exception("claim approval rolled back id=%s", claim_id)
                    raise RepositoryIntegrityError("claim approval could not be committed") from exc

        logger.info("claim approved id=%s restaurant_id=%s actor=%s", claim["id"], claim["restaurant_id"], actor_user_id)
        return {"claim": claim, "restaurant": restaurant}

    async def deny_claim(self, *, claim_id: str, actor_user_id: str, notes: str | None) -> dict[str, Any]:
        return await self._review_claim(
            claim_id=claim_id,
            actor_user_id=actor_user_id,
            action=ClaimAction.DENY,
            notes=self._coerce_text(notes) or DEFAULT_CLAIM_DENIAL_NOTES,
            event_type="claim_denied",
        )

    async def request_claim_info(self, *, claim_id: str, actor_user_id: str, notes: str | None) -> dict[str, Any]:
        return await self._review_claim(
            claim_id=claim_id,
            actor_user_id=actor_user_id,
            action=ClaimAction.REQUEST_INFO,
            notes=self._coerce_text(notes),
            event_type="claim_info_requested",
        )

    async def resubmit_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        evidence: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_claim_for_update(conn=conn, claim_id=claim_id)
                if existing["user_id"] != actor_user_id:
                    raise RepositoryNotFoundError("claim not found")
                target = next_claim_status(existing["status"], ClaimAction.RESUBMIT)
                previous_evidence = self._coerce_json_dict(existing["evidence"])
                new_evidence = normalize_claim_evidence(evidence)
                if previous_evidence.get("restaurant_name"):
                    new_evidence.setdefault("restaurant_name", previous_evidence["restaurant_name"])
                row = await conn.fetchrow(
                    f"""
                    update claims
                    set
                      status = $2,
                      evidence = $3::jsonb,
                      updated_at = now()
                    where id = $1::uuid
                      and status = $4
                    returning {CLAIM_COLUMNS_SQL}
                    """,
                    existing["id"],
                    target.value,
                    json.dumps(new_evidence),
                    existing["status"],
                )
                if not row:
                    raise RepositoryInvalidStateError("claim changed during resubmission")
                await self._record_audit_event(
                    conn=conn,
                    entity_type="claim",
                    entity_id=existing["id"],
                    event_type="claim_resubmitted",
                    actor_id=actor_user_id,
                    payload={"evidence_keys": sorted(new_evidence)},
                )
                return self._claim_row_to_dict(row)

    async def _review_claim(
        self,
        *,
        claim_id: str,
        actor_user_id: str,
        action: ClaimAction,
        notes: str | None,
        event_type: str,
    ) -> dict[str, Any]:
        async with self._acquire() as conn:
            async with conn.transaction():
                existing = await self._fetch_claim_for_update(conn=conn, claim_id=claim_id)
                target = next_claim_status(existing["status"], action)
                row = await conn.fetchrow(
                    f"""
                    update claims
                    set
                      status = $2,
                      reviewed_by = $3::uuid,
                      reviewed_at = now(),
                      decision_notes = $4,
                      updated_at = now()
                    where id = $1::uuid
                      and status = $5
                    returning {CLAIM_COLUMNS_SQL}
                    """,
                    existing["id"],
                    target.value,
                    actor_user_id,
                    notes,
                    existing["status"],
                )
                if not row:
                    raise RepositoryInvalidStateError("claim has already been processed")
                await self._record_audit_event(
                    conn=conn,
                    entity_type="claim",
                    entity_id=existing["id"],
                    event_type=event_type,
                    actor_id=actor_user_id,
                    payload={"from_status": existing["status"], "to_status": target.value, "notes": notes},
                )
        logger.info("claim %s id=%s actor=%s", action.value, claim_id, actor_user_id)
        return self._claim_row_to_dict(row)

    # -- restaurants and directory reads ---------------------------------

    async def get_restaurant(self, *, restaurant_id: str) -> dict[str, Any]:
        parsed_id = self._parse_uuid(restaurant_id)
        if parsed_id is None:
            raise RepositoryNotFoundError("restaurant not found")
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                f"""
                select {RESTAURANT_COLUMNS_SQL}, {RESTAURANT_SOUPS_SQL}
                from restaurants r
                where r.id = $1::uuid
                  and r.is_active = true
                  and r.status = 'live'
                """,
                parsed_id,
            )
        if not row:
            raise RepositoryNotFoundError("restaurant not found")
        return self._restaurant_row_to_dict(row)

    async def get_restaurant_by_slug(self, *, slug: str) -> dict[str, Any]:
        normalized_slug = self._coerce_text(slug)
        if not normalized_slug:
            raise RepositoryNotFoundError("restaurant not found")
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                f"""
                select {RESTAURANT_COLUMNS_SQL}, {RESTAURANT_SOUPS_SQL}
                from restaurants r
                where r.slug = $1
                  and r.is_active = true
                  and r.status = 'live'
                """,
                normalized_slug.lower(),
            )
        if not row:
            raise RepositoryNotFoundError("restaurant not found")
        return self._restaurant_row_to_dict(row)

    async def list_restaurant_ids_for_soup_types(
        self,
        *,
        raw_variants: set[str],
        slug_keys: set[str],
    ) -> set[str]:
        if not raw_variants and not slug_keys:
            return set()
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                with soup_slugs as (
                  select
                    s.restaurant_id,
                    s.soup_type,
                    {SOUP_SLUG_SQL} as slug
                  from soups s
                  where s.soup_type is not null
                )
                select distinct restaurant_id::text as restaurant_id
                from soup_slugs
                where soup_type = any($1::text[])
                  or (
                    slug <> ''
                    and (
                      slug = any($2::text[])
                      or (slug like '%-soup' and left(slug, length(slug) - 5) = any($2::text[]))
                      or (position('-soup' in slug) = 0 and slug || '-soup' = any($2::text[]))
                    )
                  )
                """,
                sorted(raw_variants),
                sorted(slug_keys),
            )
        return {row["restaurant_id"] for row in rows}

    async def count_restaurants(self, predicate: RestaurantPredicate) -> int | None:
        where_sql, params = self._restaurant_predicate_sql(predicate)
        async with self._acquire() as conn:
            count = await conn.fetchval(
                f"""
                select count(*)
                from restaurants r
                where {where_sql}
                """,
                *params,
            )
        return int(count) if count is not None else None

    async def list_restaurant_ids(self, predicate: RestaurantPredicate) -> list[str]:
        where_sql, params = self._restaurant_predicate_sql(predicate)
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select r.id::text as id
                from restaurants r
                where {where_sql}
                """,
                *params,
            )
        return [row["id"] for row in rows]

    async def list_restaurants(
        self,
        predicate: RestaurantPredicate,
        *,
        sort_by: str,
        sort_order: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        where_sql, params = self._restaurant_predicate_sql(predicate)
        sort_expr = RESTAURANT_SORT_EXPRESSIONS.get(sort_by, RESTAURANT_SORT_EXPRESSIONS["rating"])
        direction = "asc" if sort_order == "asc" else "desc"
        params.extend([limit, offset])
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                select {RESTAURANT_COLUMNS_SQL}, {RESTAURANT_SOUPS_SQL}
                from restaurants r
                where {where_sql}
                order by {sort_expr} {direction} nulls last, r.id asc
                limit ${len(params) - 1}
                offset ${len(params)}
                """,
                *params,
            )
        return [self._restaurant_row_to_dict(row) for row in rows]

    async def list_visible_restaurant_locations(self, *, states: list[str]) -> list[dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(
                """
                select id::text as id, city, state
                from restaurants
                where is_active = true
                  and status = 'live'
                  and upper(trim(state)) = any($1::text[])
                """,
                states,
            )
        return [{"id": row["id"], "city": row["city"], "state": row["state"]} for row in rows]

    async def list_soup_type_rows(self, *, states: list[str]) -> list[dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(
                """
                select
                  s.soup_type,
                  s.restaurant_id::text as restaurant_id,
                  r.city,
                  r.state
                from soups s
                join restaurants r on r.id = s.restaurant_id
                where r.is_active = true
                  and r.status = 'live'
                  and upper(trim(r.state)) = any($1::text[])
                """,
                states,
            )
        return [
            {
                "soup_type": row["soup_type"],
                "restaurant_id": row["restaurant_id"],
                "city": row["city"],
                "state": row["state"],
            }
            for row in rows
        ]

    # -- audit -----------------------------------------------------------

    async def list_audit_events(
        self,
        *,
        entity_type: str | None,
        entity_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        parsed_entity_id: str | None = None
        if entity_id is not None:
            parsed_entity_id = self._parse_uuid(entity_id)
            if parsed_entity_id is None:
                return []
        async with self._acquire() as conn:
            rows = await conn.fetch(
                """
                select
                  id,
                  entity_type,
                  entity_id::text as entity_id,
                  event_type,
                  actor_id::text as actor_id,
                  payload,
                  created_at
                from audit_events
                where ($1::text is null or entity_type = $1::text)
                  and ($2::uuid is null or entity_id = $2::uuid)
                order by created_at desc, id desc
                limit $3
                offset $4
                """,
                self._coerce_text(entity_type),
                parsed_entity_id,
                limit,
                offset,
            )
        return [self._audit_event_row_to_dict(row) for row in rows]

    async def _record_audit_event(
        self,
        *,
        conn: asyncpg.Connection,
        entity_type: str,
        entity_id: str,
        event_type: str,
        actor_id: str | None,
        payload: dict[str, Any],
    ) -> None:
        await conn.execute(
            """
            insert into audit_events (entity_type, entity_id, event_type, actor_id, payload)
            values ($1, $2::uuid, $3, $4::uuid, $5::jsonb)
            """,
            entity_type,
            entity_id,
            event_type,
            self._parse_uuid(actor_id),
            json.dumps(payload, default=str),
        )

    # -- helpers ---------------------------------------------------------

    async def _insert_restaurant_from_submission(
        self,
        *,
        conn: asyncpg.Connection,
        submission: dict[str, Any],
    ) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        for _ in range(SLUG_ALLOCATION_ATTEMPTS):
            slug = build_restaurant_slug(
                name=submission["restaurant_name"],
                city=submission["city"],
                state=submission["state"],
            )
            fields = build_restaurant_from_submission(submission, slug=slug, now=now)
            try:
                # Savepoint so a slug collision does not abort the approval transaction.
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        insert into restaurants (
                          name,
                          address,
                          city,
                          state,
                          zip_code,
                          phone,
                          website,
                          cuisine,
                          slug,
                          status,
                          is_active,
                          is_verified,
                          owner_id,
                          verified_at
                        )
                        values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13::uuid, $14)
                        returning id::text as id
                        """,
                        fields["name"],
                        fields["address"],
                        fields["city"],
                        fields["state"],
                        fields["zip_code"],
                        fields["phone"],
                        fields["website"],
                        fields["cuisine"],
                        fields["slug"],
                        fields["status"],
                        fields["is_active"],
                        fields["is_verified"],
                        fields["owner_id"],
                        fields["verified_at"],
                    )
            except pg_exc.UniqueViolationError:
                logger.warning("restaurant slug collision slug=%s; retrying", slug)
                continue
            return await self._fetch_restaurant(conn=conn, restaurant_id=row["id"])
        raise RepositoryIntegrityError("could not allocate a unique restaurant slug")

    async def _remove_restaurant(
        self,
        *,
        conn: asyncpg.Connection,
        restaurant_id: str,
        actor_user_id: str,
    ) -> dict[str, Any] | None:
        current = await conn.fetchrow(
            """
            select id::text as id, status
            from restaurants
            where id = $1::uuid
            for update
            """,
            restaurant_id,
        )
        if not current:
            logger.warning("submission references missing restaurant id=%s", restaurant_id)
            return None
        target = next_restaurant_status(current["status"], RestaurantAction.REMOVE)
        await conn.execute(
            """
            update restaurants
            set
              is_active = false,
              status = $2,
              updated_at = now()
            where id = $1::uuid
            """,
            current["id"],
            target.value,
        )
        await self._record_audit_event(
            conn=conn,
            entity_type="restaurant",
            entity_id=current["id"],
            event_type="restaurant_removed",
            actor_id=actor_user_id,
            payload={"from_status": current["status"], "to_status": target.value},
        )
        return await self._fetch_restaurant(conn=conn, restaurant_id=current["id"])

    async def _ensure_owner_org(self, *, conn: asyncpg.Connection, user_id: str, restaurant_name: str | None) -> str:
        org_id = await conn.fetchval(
            """
            select org_id::text
            from org_members
            where user_id = $1::uuid
            order by created_at asc
            limit 1
            """,
            user_id,
        )
        if org_id:
            return str(org_id)

        org_name = f"{restaurant_name} Organization" if restaurant_name else "Restaurant Organization"
        org_id = await conn.fetchval(
            """
            insert into orgs (name)
            values ($1)
            returning id::text
            """,
            org_name,
        )
        await conn.execute(
            """
            insert into org_members (org_id, user_id, role_in_org)
            values ($1::uuid, $2::uuid, 'owner')
            """,
            org_id,
            user_id,
        )
        return str(org_id)

    async def _fetch_restaurant(self, *, conn: asyncpg.Connection, restaurant_id: str) -> dict[str, Any]:
        row = await conn.fetchrow(
            f"""
            select {RESTAURANT_COLUMNS_SQL}, {RESTAURANT_SOUPS_SQL}
            from restaurants r
            where r.id = $1::uuid
            """,
            restaurant_id,
        )
        if not row:
            raise RepositoryNotFoundError("restaurant not found")
        return self._restaurant_row_to_dict(row)

    async def _fetch_owned_submission(
        self,
        *,
        conn: asyncpg.Connection,
        submission_id: str,
        actor_user_id: str,
        for_update: bool,
    ) -> asyncpg.Record:
        parsed_id = self._parse_uuid(submission_id)
        if parsed_id is None:
            raise RepositoryNotFoundError("submission not found")
        lock_sql = "for update" if for_update else ""
        row = await conn.fetchrow(
            f"""
            select {SUBMISSION_COLUMNS_SQL}
            from restaurant_submissions
            where id = $1::uuid
            {lock_sql}
            """,
            parsed_id,
        )
        # Absent and not-yours look the same to the caller.
        if not row or row["submitted_by"] != actor_user_id:
            raise RepositoryNotFoundError("submission not found")
        return row

    async def _fetch_submission_for_update(self, *, conn: asyncpg.Connection, submission_id: str) -> asyncpg.Record:
        parsed_id = self._parse_uuid(submission_id)
        if parsed_id is None:
            raise RepositoryNotFoundError("submission not found")
        row = await conn.fetchrow(
            f"""
            select {SUBMISSION_COLUMNS_SQL}
            from restaurant_submissions
            where id = $1::uuid
            for update
            """,
            parsed_id,
        )
        if not row:
            raise RepositoryNotFoundError("submission not found")
        return row

    async def _fetch_claim_for_update(self, *, conn: asyncpg.Connection, claim_id: str) -> asyncpg.Record:
        parsed_id = self._parse_uuid(claim_id)
        if parsed_id is None:
            raise RepositoryNotFoundError("claim not found")
        row = await conn.fetchrow(
            f"""
            select {CLAIM_COLUMNS_SQL}
            from claims
            where id = $1::uuid
            for update
            """,
            parsed_id,
        )
        if not row:
            raise RepositoryNotFoundError("claim not found")
        return row

    @staticmethod
    def _restaurant_predicate_sql(predicate: RestaurantPredicate) -> tuple[str, list[Any]]:
        conditions = ["r.is_active = true", "r.status = 'live'"]
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if not predicate.cities:
            conditions.append("false")
        else:
            city_clauses = [
                f"(lower(trim(r.city)) = {bind(city.key[0])} and upper(trim(r.state)) = {bind(city.key[1])})"
                for city in predicate.cities
            ]
            conditions.append(f"({' or '.join(city_clauses)})")

        if predicate.restrict_ids is not None:
            conditions.append(f"r.id::text = any({bind(sorted(predicate.restrict_ids))}::text[])")

        if predicate.location:
            token = bind(f"%{_escape_like(predicate.location)}%")
            conditions.append(f"(r.city ilike {token} or r.name ilike {token})")

        if predicate.min_rating is not None:
            conditions.append(f"r.rating >= {bind(float(predicate.min_rating))}::float8")

        if predicate.price_ranges:
            conditions.append(f"r.price_range = any({bind(list(predicate.price_ranges))}::text[])")

        if predicate.featured_only:
            conditions.append("r.is_featured = true")

        return " and ".join(conditions), params

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[asyncpg.Connection]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                yield conn
        except (OSError, asyncpg.PostgresConnectionError, asyncpg.InterfaceError) as exc:
            logger.error("database connection failed: %s", exc)
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SD_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _submission_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "submitted_by": row["submitted_by"],
            "restaurant_name": row["restaurant_name"],
            "address": row["address"],
            "city": row["city"],
            "state": row["state"],
            "zip_code": row["zip_code"],
            "phone": row["phone"],
            "website": row["website"],
            "cuisine": row["cuisine"],
            "soup_tags": list(row["soup_tags"] or []),
            "contact_name": row["contact_name"],
            "contact_email": row["contact_email"],
            "contact_phone": row["contact_phone"],
            "is_restaurant_owner": bool(row["is_restaurant_owner"]),
            "submission_notes": row["submission_notes"],
            "status": row["status"],
            "delete_requested": bool(row["delete_requested"]),
            "delete_request_reason": row["delete_request_reason"],
            "created_restaurant_id": row["created_restaurant_id"],
            "reviewed_by": row["reviewed_by"],
            "reviewed_at": row["reviewed_at"],
            "review_notes": row["review_notes"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @classmethod
    def _restaurant_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "name": row["name"],
            "slug": row["slug"],
            "address": row["address"],
            "city": row["city"],
            "state": row["state"],
            "zip_code": row["zip_code"],
            "phone": row["phone"],
            "website": row["website"],
            "cuisine": row["cuisine"],
            "description": row["description"],
            "rating": cls._coerce_float(row["rating"]),
            "review_count": int(row["review_count"] or 0),
            "price_range": row["price_range"],
            "is_featured": bool(row["is_featured"]),
            "owner_id": row["owner_id"],
            "owner_org_id": row["owner_org_id"],
            "is_verified": bool(row["is_verified"]),
            "verified_at": row["verified_at"],
            "is_active": bool(row["is_active"]),
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "soups": cls._coerce_json_list(row["soups"]),
        }

    @classmethod
    def _claim_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "restaurant_id": row["restaurant_id"],
            "user_id": row["user_id"],
            "status": row["status"],
            "evidence": cls._coerce_json_dict(row["evidence"]),
            "reviewed_by": row["reviewed_by"],
            "reviewed_at": row["reviewed_at"],
            "decision_notes": row["decision_notes"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @classmethod
    def _audit_event_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": int(row["id"]),
            "entity_type": row["entity_type"],
            "entity_id": row["entity_id"],
            "event_type": row["event_type"],
            "actor_id": row["actor_id"],
            "payload": cls._coerce_json_dict(row["payload"]),
            "created_at": row["created_at"],
        }

    @staticmethod
    def _parse_uuid(value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return str(UUID(value.strip()))
        except ValueError:
            return None

    @classmethod
    def _require_uuid(cls, value: Any, *, entity: str) -> str:
        parsed = cls._parse_uuid(value)
        if parsed is None:
            raise RepositoryNotFoundError(f"{entity} not found")
        return parsed

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @staticmethod
    def _coerce_float(value: Any) -> float | None:
        if value is None:
            return None
        if isinstance(value, Decimal):
            return float(value)
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _coerce_json_list(value: Any) -> list[dict[str, Any]]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return []
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return value
        return {}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@lru_cache
def get_repository():
    settings = get_settings()
    if settings.storage_backend == "memory":
        from soup_directory.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
