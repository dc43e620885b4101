"""Status enums and transition tables for submissions, restaurants and claims.

The tables below are the only place that decides whether a moderation action is
legal for a record's current status. Repositories look up the next status here
before writing anything.
"""

from __future__ import annotations

from enum import Enum

from soup_directory.services.errors import RepositoryInvalidStateError, RepositoryNotFoundError


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REMOVED = "removed"


class RestaurantStatus(str, Enum):
    DRAFT = "draft"
    LIVE = "live"
    REMOVED = "removed"
    SUSPENDED = "suspended"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    NEEDS_MORE_INFO = "needs_more_info"


class SubmissionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REMOVE = "remove"


class RestaurantAction(str, Enum):
    REMOVE = "remove"


class ClaimAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    REQUEST_INFO = "request_info"
    RESUBMIT = "resubmit"


SUBMISSION_TRANSITIONS: dict[tuple[SubmissionStatus, SubmissionAction], SubmissionStatus] = {
    (SubmissionStatus.PENDING, SubmissionAction.APPROVE): SubmissionStatus.APPROVED,
    (SubmissionStatus.PENDING, SubmissionAction.REJECT): SubmissionStatus.REJECTED,
    (SubmissionStatus.APPROVED, SubmissionAction.REMOVE): SubmissionStatus.REMOVED,
}

RESTAURANT_TRANSITIONS: dict[tuple[RestaurantStatus, RestaurantAction], RestaurantStatus] = {
    (RestaurantStatus.DRAFT, RestaurantAction.REMOVE): RestaurantStatus.REMOVED,
    (RestaurantStatus.LIVE, RestaurantAction.REMOVE): RestaurantStatus.REMOVED,
    (RestaurantStatus.SUSPENDED, RestaurantAction.REMOVE): RestaurantStatus.REMOVED,
}

CLAIM_TRANSITIONS: dict[tuple[ClaimStatus, ClaimAction], ClaimStatus] = {
    (ClaimStatus.PENDING, ClaimAction.APPROVE): ClaimStatus.APPROVED,
    (ClaimStatus.PENDING, ClaimAction.DENY): ClaimStatus.DENIED,
    (ClaimStatus.PENDING, ClaimAction.REQUEST_INFO): ClaimStatus.NEEDS_MORE_INFO,
    (ClaimStatus.NEEDS_MORE_INFO, ClaimAction.RESUBMIT): ClaimStatus.PENDING,
    (ClaimStatus.NEEDS_MORE_INFO, ClaimAction.DENY): ClaimStatus.DENIED,
}

# Submission statuses in which the submitter may still edit or hard-delete.
SUBMITTER_EDITABLE_STATUSES = frozenset({SubmissionStatus.PENDING})
SUBMITTER_DELETABLE_STATUSES = frozenset({SubmissionStatus.PENDING})


def _coerce(enum_type: type[Enum], value: object, *, entity: str) -> Enum:
    try:
        return enum_type(value)
    except ValueError as exc:
        raise RepositoryInvalidStateError(f"unknown {entity} status: {value}") from exc


def next_submission_status(current: str | SubmissionStatus, action: SubmissionAction) -> SubmissionStatus:
    status = _coerce(SubmissionStatus, current, entity="submission")
    target = SUBMISSION_TRANSITIONS.get((status, action))
    if target is not None:
        return target
    if action in {SubmissionAction.APPROVE, SubmissionAction.REJECT}:
        raise RepositoryInvalidStateError("submission has already been reviewed")
    raise RepositoryInvalidStateError(f"cannot {action.value} a {status.value} submission")


def next_restaurant_status(current: str | RestaurantStatus, action: RestaurantAction) -> RestaurantStatus:
    status = _coerce(RestaurantStatus, current, entity="restaurant")
    target = RESTAURANT_TRANSITIONS.get((status, action))
    if target is None:
        raise RepositoryInvalidStateError(f"cannot {action.value} a {status.value} restaurant")
    return target


def next_claim_status(current: str | ClaimStatus, action: ClaimAction) -> ClaimStatus:
    status = _coerce(ClaimStatus, current, entity="claim")
    target = CLAIM_TRANSITIONS.get((status, action))
    if target is not None:
        return target
    if status in {ClaimStatus.APPROVED, ClaimStatus.DENIED}:
        raise RepositoryInvalidStateError("claim has already been processed")
    raise RepositoryInvalidStateError(f"cannot {action.value.replace('_', ' ')} a {status.value} claim")


def ensure_submission_editable(current: str | SubmissionStatus) -> None:
    status = _coerce(SubmissionStatus, current, entity="submission")
    # Reviewed submissions read as absent to the submitter.
    if status not in SUBMITTER_EDITABLE_STATUSES:
        raise RepositoryNotFoundError("submission not found")


def ensure_submission_deletable(current: str | SubmissionStatus) -> None:
    status = _coerce(SubmissionStatus, current, entity="submission")
    if status not in SUBMITTER_DELETABLE_STATUSES:
        if status == SubmissionStatus.APPROVED:
            raise RepositoryInvalidStateError("approved submissions cannot be deleted; request removal instead")
        raise RepositoryInvalidStateError(f"{status.value} submissions cannot be deleted")


def ensure_deletion_requestable(current: str | SubmissionStatus, *, delete_requested: bool) -> None:
    status = _coerce(SubmissionStatus, current, entity="submission")
    if status is not SubmissionStatus.APPROVED:
        raise RepositoryInvalidStateError("you can only request removal for approved submissions")
    if delete_requested:
        raise RepositoryInvalidStateError("removal has already been requested for this submission")


def ensure_removal_requested(*, delete_requested: bool) -> None:
    if not delete_requested:
        raise RepositoryInvalidStateError("submission has not requested deletion")
