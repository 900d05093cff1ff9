from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from disputedesk.common.enums import (
    DisputePriority,
    DisputeReason,
    DisputeStatus,
    EvidenceType,
    UserRole,
)
from disputedesk.integrations.transactions import Transaction


class Actor(BaseModel):
    """Identity supplied by the identity provider for every call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: UserRole


class ActorRef(BaseModel):
    id: str
    name: str
    role: str


class DisputeEvidence(BaseModel):
    id: str
    type: EvidenceType = EvidenceType.DOCUMENT
    file_name: str
    uploaded_at: datetime
    uploaded_by: str


class DisputeFormData(BaseModel):
    transaction_id: str
    category: str | None = None
    reason_code: str | None = None
    reason: DisputeReason = DisputeReason.OTHER
    priority: DisputePriority = DisputePriority.MEDIUM
    description: str = ""
    requested_amount: float = Field(0.0, ge=0)
    evidence: list[DisputeEvidence] = Field(default_factory=list)


class Dispute(BaseModel):
    id: str
    transaction_id: str
    transaction: Transaction | None = None
    status: DisputeStatus
    reason: DisputeReason
    reason_code: str
    category: str
    priority: DisputePriority
    description: str
    original_amount: float
    requested_amount: float
    claimed_amount: float
    approved_amount: float | None = None
    currency: str
    evidence: list[DisputeEvidence] = Field(default_factory=list)
    created_by: ActorRef
    created_at: datetime
    updated_at: datetime
    assigned_to: ActorRef | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    version: int = 1


class DisputeFilter(BaseModel):
    status: DisputeStatus | None = None
    assigned_to: str | None = None


class WriteResult(BaseModel):
    """Outcome of a version-checked write. A conflict is a value, not an error."""

    conflict: bool
    dispute: Dispute
    # State the version check ran against; unset on conflict.
    previous: Dispute | None = Field(None, exclude=True)


class ConflictInfo(BaseModel):
    dispute_id: str
    local_version: int
    server_version: int
    server_data: dict[str, Any]
    conflicted_fields: list[str]


class TransitionResult(BaseModel):
    success: bool
    dispute: Dispute
    conflict: bool = False
    from_status: DisputeStatus | None = None
    to_status: DisputeStatus | None = None
    # Follow-up steps that failed after the status write committed.
    failed_steps: list[str] = Field(default_factory=list)


class TransitionRule(BaseModel):
    next_statuses: tuple[DisputeStatus, ...]
    allowed_roles: tuple[UserRole, ...]
