from datetime import datetime
from typing import Any

from pydantic import Field

from soup_directory.schemas.common import CamelModel


class AuditEventOut(CamelModel):
    id: int
    entity_type: str
    entity_id: str
    event_type: str
    actor_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
