from datetime import datetime
from typing import Literal

from pydantic import Field

from soup_directory.schemas.common import CamelModel
from soup_directory.schemas.restaurants import RestaurantOut

SubmissionStatus = Literal["pending", "approved", "rejected", "removed"]


class SubmissionFields(CamelModel):
    # Everything optional here; required-field checks run in the service so the
    # caller gets the first missing field by name.
    restaurant_name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    website: str | None = None
    cuisine: str | None = None
    soup_tags: list[str] | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    is_restaurant_owner: bool | None = None
    submission_notes: str | None = None


class SubmissionCreateRequest(SubmissionFields):
    pass


class SubmissionPatchRequest(SubmissionFields):
    pass


class DeletionRequest(CamelModel):
    reason: str | None = None


class SubmissionOut(CamelModel):
    id: str
    submitted_by: str
    restaurant_name: str
    address: str
    city: str
    state: str
    zip_code: str | None = None
    phone: str | None = None
    website: str | None = None
    cuisine: str | None = None
    soup_tags: list[str] = Field(default_factory=list)
    contact_name: str
    contact_email: str
    contact_phone: str | None = None
    is_restaurant_owner: bool = False
    submission_notes: str | None = None
    status: SubmissionStatus
    delete_requested: bool = False
    delete_request_reason: str | None = None
    created_restaurant_id: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class SubmissionCreatedOut(CamelModel):
    submission_id: str
    submission: SubmissionOut


class ReviewRequest(CamelModel):
    notes: str | None = None


class RejectRequest(CamelModel):
    reason: str | None = None


class ModerationOut(CamelModel):
    restaurant: RestaurantOut | None = None
    submission: SubmissionOut
