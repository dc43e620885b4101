from typing import Literal

from fastapi import APIRouter, Depends, Query

from soup_directory.api.errors import repository_http_error
from soup_directory.core.auth import Principal
from soup_directory.core.security import get_human_principal, require_admin
from soup_directory.schemas.audit import AuditEventOut
from soup_directory.schemas.claims import ClaimApprovalOut, ClaimDecisionRequest, ClaimOut, ClaimStatus
from soup_directory.schemas.submissions import (
    ModerationOut,
    RejectRequest,
    ReviewRequest,
    SubmissionOut,
    SubmissionStatus,
)
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()

AuditEntityType = Literal["restaurant_submission", "restaurant", "claim"]


@router.get("/submissions", response_model=list[SubmissionOut])
async def list_submissions(
    submission_status: SubmissionStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[SubmissionOut]:
    require_admin(principal)
    try:
        rows = await repository.list_submissions(status=submission_status, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return [SubmissionOut(**row) for row in rows]


@router.post("/submissions/{submission_id}/approve", response_model=ModerationOut)
async def approve_submission(
    submission_id: str,
    payload: ReviewRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ModerationOut:
    require_admin(principal)
    try:
        result = await repository.approve_submission(
            submission_id=submission_id,
            actor_user_id=principal.actor_id,
            notes=payload.notes if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.post("/submissions/{submission_id}/reject", response_model=SubmissionOut)
async def reject_submission(
    submission_id: str,
    payload: RejectRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionOut:
    require_admin(principal)
    try:
        row = await repository.reject_submission(
            submission_id=submission_id,
            actor_user_id=principal.actor_id,
            reason=payload.reason if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SubmissionOut(**row)


@router.post("/submissions/{submission_id}/remove", response_model=ModerationOut)
async def remove_submission(
    submission_id: str,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ModerationOut:
    require_admin(principal)
    try:
        result = await repository.remove_submission(submission_id=submission_id, actor_user_id=principal.actor_id)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ModerationOut.model_validate(result)


@router.get("/claims", response_model=list[ClaimOut])
async def list_claims(
    claim_status: ClaimStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[ClaimOut]:
    require_admin(principal)
    try:
        rows = await repository.list_claims(status=claim_status, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return [ClaimOut(**row) for row in rows]


@router.post("/claims/{claim_id}/approve", response_model=ClaimApprovalOut)
async def approve_claim(
    claim_id: str,
    payload: ClaimDecisionRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ClaimApprovalOut:
    require_admin(principal)
    try:
        result = await repository.approve_claim(
            claim_id=claim_id,
            actor_user_id=principal.actor_id,
            notes=payload.notes if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ClaimApprovalOut.model_validate(result)


@router.post("/claims/{claim_id}/deny", response_model=ClaimOut)
async def deny_claim(
    claim_id: str,
    payload: ClaimDecisionRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ClaimOut:
    require_admin(principal)
    try:
        row = await repository.deny_claim(
            claim_id=claim_id,
            actor_user_id=principal.actor_id,
            notes=payload.notes if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ClaimOut(**row)


@router.post("/claims/{claim_id}/request-info", response_model=ClaimOut)
async def request_claim_info(
    claim_id: str,
    payload: ClaimDecisionRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ClaimOut:
    require_admin(principal)
    try:
        row = await repository.request_claim_info(
            claim_id=claim_id,
            actor_user_id=principal.actor_id,
            notes=payload.notes if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ClaimOut(**row)


@router.get("/audit-events", response_model=list[AuditEventOut])
async def list_audit_events(
    entity_type: AuditEntityType | None = Query(default=None, alias="entityType"),
    entity_id: str | None = Query(default=None, alias="entityId", min_length=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[AuditEventOut]:
    require_admin(principal)
    try:
        rows = await repository.list_audit_events(
            entity_type=entity_type,
            entity_id=entity_id,
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return [AuditEventOut(**row) for row in rows]
