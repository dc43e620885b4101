from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from soup_directory.api.errors import forbidden, repository_http_error
from soup_directory.core.auth import Principal
from soup_directory.core.security import get_human_principal
from soup_directory.schemas.common import SuccessOut
from soup_directory.schemas.submissions import (
    DeletionRequest,
    SubmissionCreatedOut,
    SubmissionCreateRequest,
    SubmissionOut,
    SubmissionPatchRequest,
)
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()


def _require_submitter(principal: Principal) -> None:
    try:
        principal.require_scopes({"submission:write"})
    except PermissionError as exc:
        raise forbidden(exc) from exc


@router.post("", response_model=SubmissionCreatedOut, status_code=http_status.HTTP_201_CREATED)
async def create_submission(
    payload: SubmissionCreateRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionCreatedOut:
    _require_submitter(principal)
    try:
        row = await repository.create_submission(
            payload=payload.model_dump(exclude_none=True),
            submitter_id=principal.actor_id,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SubmissionCreatedOut(submission_id=row["id"], submission=SubmissionOut(**row))


@router.get("", response_model=list[SubmissionOut])
async def list_my_submissions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[SubmissionOut]:
    try:
        rows = await repository.list_user_submissions(submitter_id=principal.actor_id, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return [SubmissionOut(**row) for row in rows]


@router.get("/{submission_id}", response_model=SubmissionOut)
async def get_submission(
    submission_id: str,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionOut:
    try:
        row = await repository.get_submission(submission_id=submission_id, actor_user_id=principal.actor_id)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SubmissionOut(**row)


@router.patch("/{submission_id}", response_model=SubmissionOut)
async def update_submission(
    submission_id: str,
    payload: SubmissionPatchRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionOut:
    _require_submitter(principal)
    patch = payload.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail="no fields to update")
    try:
        row = await repository.update_submission(
            submission_id=submission_id,
            patch=patch,
            actor_user_id=principal.actor_id,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SubmissionOut(**row)


@router.delete("/{submission_id}", response_model=SuccessOut)
async def delete_submission(
    submission_id: str,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SuccessOut:
    _require_submitter(principal)
    try:
        await repository.delete_submission(submission_id=submission_id, actor_user_id=principal.actor_id)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SuccessOut()


@router.post("/{submission_id}/request-delete", response_model=SubmissionOut)
async def request_submission_deletion(
    submission_id: str,
    payload: DeletionRequest | None = None,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionOut:
    _require_submitter(principal)
    try:
        row = await repository.request_submission_deletion(
            submission_id=submission_id,
            actor_user_id=principal.actor_id,
            reason=payload.reason if payload else None,
        )
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return SubmissionOut(**row)
