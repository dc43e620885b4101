from fastapi import APIRouter, Depends, Query, status as http_status

from soup_directory.api.errors import forbidden, repository_http_error
from soup_directory.core.auth import Principal
from soup_directory.core.security import get_human_principal
from soup_directory.schemas.claims import ClaimCreateRequest, ClaimOut, ClaimResubmitRequest
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()


def _require_claimant(principal: Principal) -> None:
    try:
        principal.require_scopes({"claim:write"})
    except PermissionError as exc:
        raise forbidden(exc) from exc


@router.post("", response_model=ClaimOut, status_code=http_status.HTTP_201_CREATED)
async def create_claim(
    payload: ClaimCreateRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ClaimOut:
    _require_claimant(principal)
    evidence = dict(payload.evidence)
    if principal.email:
        evidence.setdefault("account_email", principal.email)
    try:
        row = await repository.create_claim(
            restaurant_id=payload.restaurant_id,
            user_id=principal.actor_id,
            evidence=evidence,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ClaimOut(**row)


@router.get("", response_model=list[ClaimOut])
async def list_my_claims(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[ClaimOut]:
    try:
        rows = await repository.list_user_claims(user_id=principal.actor_id, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return [ClaimOut(**row) for row in rows]


@router.post("/{claim_id}/resubmit", response_model=ClaimOut)
async def resubmit_claim(
    claim_id: str,
    payload: ClaimResubmitRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ClaimOut:
    _require_claimant(principal)
    try:
        row = await repository.resubmit_claim(
            claim_id=claim_id,
            actor_user_id=principal.actor_id,
            evidence=payload.evidence,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return ClaimOut(**row)
