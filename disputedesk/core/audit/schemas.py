from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from disputedesk.common.enums import AuditAction, UserRole


class AuditActor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: UserRole


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    dispute_id: str
    action: AuditAction
    actor: AuditActor
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)
    previous_value: Any = None
    new_value: Any = None


class AuditStats(BaseModel):
    total_entries: int
    entries_by_action: dict[str, int]
    entries_by_actor: dict[str, int]
