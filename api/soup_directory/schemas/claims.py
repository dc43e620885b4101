from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from soup_directory.schemas.common import CamelModel
from soup_directory.schemas.restaurants import RestaurantOut

ClaimStatus = Literal["pending", "approved", "denied", "needs_more_info"]


class ClaimCreateRequest(CamelModel):
    restaurant_id: str
    evidence: dict[str, Any] = Field(default_factory=dict)


class ClaimResubmitRequest(CamelModel):
    evidence: dict[str, Any] = Field(default_factory=dict)


class ClaimDecisionRequest(CamelModel):
    notes: str | None = None


class ClaimOut(CamelModel):
    id: str
    restaurant_id: str
    user_id: str
    status: ClaimStatus
    evidence: dict[str, Any] = Field(default_factory=dict)
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    decision_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class ClaimApprovalOut(CamelModel):
    claim: ClaimOut
    restaurant: RestaurantOut
