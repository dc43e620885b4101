from __future__ import annotations

import pytest

from soup_directory.services.errors import RepositoryInvalidStateError, RepositoryNotFoundError
from soup_directory.services.lifecycle import (
    ClaimAction,
    ClaimStatus,
    RestaurantAction,
    RestaurantStatus,
    SubmissionAction,
    SubmissionStatus,
    ensure_deletion_requestable,
    ensure_removal_requested,
    ensure_submission_deletable,
    ensure_submission_editable,
    next_claim_status,
    next_restaurant_status,
    next_submission_status,
)


def test_pending_submission_can_be_approved_or_rejected() -> None:
    assert next_submission_status("pending", SubmissionAction.APPROVE) is SubmissionStatus.APPROVED
    assert next_submission_status("pending", SubmissionAction.REJECT) is SubmissionStatus.REJECTED


@pytest.mark.parametrize("status", ["approved", "rejected", "removed"])
@pytest.mark.parametrize("action", [SubmissionAction.APPROVE, SubmissionAction.REJECT])
def test_reviewed_submission_cannot_be_reviewed_again(status: str, action: SubmissionAction) -> None:
    with pytest.raises(RepositoryInvalidStateError, match="already been reviewed"):
        next_submission_status(status, action)


def test_only_approved_submission_can_be_removed() -> None:
    assert next_submission_status("approved", SubmissionAction.REMOVE) is SubmissionStatus.REMOVED
    for status in ("pending", "rejected", "removed"):
        with pytest.raises(RepositoryInvalidStateError):
            next_submission_status(status, SubmissionAction.REMOVE)


def test_unknown_status_is_invalid_state() -> None:
    with pytest.raises(RepositoryInvalidStateError, match="unknown submission status"):
        next_submission_status("archived", SubmissionAction.APPROVE)


@pytest.mark.parametrize("status", ["draft", "live", "suspended"])
def test_restaurant_remove(status: str) -> None:
    assert next_restaurant_status(status, RestaurantAction.REMOVE) is RestaurantStatus.REMOVED


def test_removed_restaurant_cannot_be_removed_again() -> None:
    with pytest.raises(RepositoryInvalidStateError):
        next_restaurant_status("removed", RestaurantAction.REMOVE)


def test_claim_transitions() -> None:
    assert next_claim_status("pending", ClaimAction.APPROVE) is ClaimStatus.APPROVED
    assert next_claim_status("pending", ClaimAction.DENY) is ClaimStatus.DENIED
    assert next_claim_status("pending", ClaimAction.REQUEST_INFO) is ClaimStatus.NEEDS_MORE_INFO
    assert next_claim_status("needs_more_info", ClaimAction.RESUBMIT) is ClaimStatus.PENDING
    assert next_claim_status("needs_more_info", ClaimAction.DENY) is ClaimStatus.DENIED


@pytest.mark.parametrize("status", ["approved", "denied"])
@pytest.mark.parametrize("action", list(ClaimAction))
def test_decided_claims_are_final(status: str, action: ClaimAction) -> None:
    with pytest.raises(RepositoryInvalidStateError, match="already been processed"):
        next_claim_status(status, action)


def test_needs_more_info_claim_cannot_be_approved_directly() -> None:
    with pytest.raises(RepositoryInvalidStateError, match="cannot approve a needs_more_info claim"):
        next_claim_status("needs_more_info", ClaimAction.APPROVE)


def test_pending_claim_cannot_be_resubmitted() -> None:
    with pytest.raises(RepositoryInvalidStateError):
        next_claim_status("pending", ClaimAction.RESUBMIT)


def test_submitter_edit_and_delete_guards() -> None:
    ensure_submission_editable("pending")
    for reviewed in ("approved", "rejected", "removed"):
        with pytest.raises(RepositoryNotFoundError, match="submission not found"):
            ensure_submission_editable(reviewed)

    ensure_submission_deletable("pending")
    with pytest.raises(RepositoryInvalidStateError, match="rejected submissions cannot be deleted"):
        ensure_submission_deletable("rejected")
    with pytest.raises(RepositoryInvalidStateError, match="request removal"):
        ensure_submission_deletable("approved")


def test_deletion_request_guards() -> None:
    ensure_deletion_requestable("approved", delete_requested=False)
    with pytest.raises(RepositoryInvalidStateError, match="only request removal for approved"):
        ensure_deletion_requestable("pending", delete_requested=False)
    with pytest.raises(RepositoryInvalidStateError, match="already been requested"):
        ensure_deletion_requestable("approved", delete_requested=True)

    ensure_removal_requested(delete_requested=True)
    with pytest.raises(RepositoryInvalidStateError, match="has not requested deletion"):
        ensure_removal_requested(delete_requested=False)
