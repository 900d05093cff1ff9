from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from disputedesk.api.deps import get_current_actor, get_services, require_capability
from disputedesk.common.enums import Capability, ConflictResolution, DisputeStatus
from disputedesk.common.exceptions import NotFoundError, VersionConflictError
from disputedesk.common.pagination import PaginatedResponse, PaginationParams
from disputedesk.core.audit.schemas import AuditLogEntry
from disputedesk.core.disputes.schemas import (
    Actor,
    ActorRef,
    Dispute,
    DisputeFilter,
    DisputeFormData,
    TransitionResult,
)
from disputedesk.core.disputes.service import DisputeService

router = APIRouter(prefix="/disputes", tags=["Disputes"])


# ---------- Schemas ----------


class DisputeCreateRequest(DisputeFormData):
    is_draft: bool = False


class DisputeUpdateRequest(BaseModel):
    expected_version: int
    changes: dict[str, Any] = Field(default_factory=dict)


class StatusChangeRequest(BaseModel):
    status: DisputeStatus
    notes: str | None = None
    approved_amount: float | None = None
    expected_version: int | None = None


class AssignRequest(BaseModel):
    assignee_id: str
    assignee_name: str
    assignee_role: str
    expected_version: int | None = None


class ConflictResolveRequest(BaseModel):
    strategy: ConflictResolution
    changes: dict[str, Any] | None = None


class TransitionsResponse(BaseModel):
    dispute_id: str
    current: DisputeStatus
    available: list[DisputeStatus]


def _conflict(dispute_id: str, local_version: int | None, server: Dispute) -> VersionConflictError:
    return VersionConflictError(
        dispute_id, local_version, server.version, server.model_dump(mode="json")
    )


# ---------- Endpoints ----------


@router.post("", response_model=Dispute, status_code=201)
async def create_dispute(
    body: DisputeCreateRequest,
    actor: Actor = Depends(require_capability(Capability.CREATE_DISPUTE)),
    services: DisputeService = Depends(get_services),
):
    form = DisputeFormData.model_validate(body.model_dump(exclude={"is_draft"}))
    return await services.create_dispute(form, actor, is_draft=body.is_draft)


@router.get("", response_model=PaginatedResponse[Dispute])
async def list_disputes(
    status: DisputeStatus | None = Query(None),
    assigned_to: str | None = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    return await services.get_disputes(
        pagination.page,
        pagination.page_size,
        DisputeFilter(status=status, assigned_to=assigned_to),
    )


@router.get("/counts", response_model=dict[DisputeStatus, int])
async def count_disputes(
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    return services.count_by_status()


@router.get("/{dispute_id}", response_model=Dispute)
async def get_dispute(
    dispute_id: str,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    dispute = await services.get_dispute_by_id(dispute_id)
    if dispute is None:
        raise NotFoundError("Dispute", dispute_id)
    return dispute


@router.patch("/{dispute_id}", response_model=Dispute)
async def update_dispute(
    dispute_id: str,
    body: DisputeUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    result = await services.update_dispute(dispute_id, body.changes, body.expected_version, actor)
    if result.conflict:
        raise _conflict(dispute_id, body.expected_version, result.dispute)
    return result.dispute


@router.delete("/{dispute_id}", status_code=204)
async def delete_dispute(
    dispute_id: str,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    await services.delete_dispute(dispute_id, actor)
    return Response(status_code=204)


@router.post("/{dispute_id}/status", response_model=TransitionResult)
async def change_status(
    dispute_id: str,
    body: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    result = await services.change_status(
        dispute_id,
        body.status,
        actor,
        notes=body.notes,
        approved_amount=body.approved_amount,
        expected_version=body.expected_version,
    )
    if result.conflict:
        raise _conflict(dispute_id, body.expected_version, result.dispute)
    return result


@router.post("/{dispute_id}/assign", response_model=TransitionResult)
async def assign_dispute(
    dispute_id: str,
    body: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    assignee = ActorRef(id=body.assignee_id, name=body.assignee_name, role=body.assignee_role)
    result = await services.assign_dispute(dispute_id, assignee, actor, body.expected_version)
    if result.conflict:
        raise _conflict(dispute_id, body.expected_version, result.dispute)
    return result


@router.post("/{dispute_id}/resolve-conflict", response_model=Dispute)
async def resolve_conflict(
    dispute_id: str,
    body: ConflictResolveRequest,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    result = await services.resolve_conflict(dispute_id, body.strategy, actor, body.changes)
    if result.conflict:
        raise _conflict(dispute_id, None, result.dispute)
    return result.dispute


@router.get("/{dispute_id}/transitions", response_model=TransitionsResponse)
async def get_transitions(
    dispute_id: str,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    dispute = await services.get_dispute_by_id(dispute_id)
    if dispute is None:
        raise NotFoundError("Dispute", dispute_id)
    return TransitionsResponse(
        dispute_id=dispute.id,
        current=dispute.status,
        available=services.available_transitions(dispute, actor),
    )


@router.get("/{dispute_id}/audit", response_model=list[AuditLogEntry])
async def get_dispute_audit(
    dispute_id: str,
    actor: Actor = Depends(require_capability(Capability.VIEW_AUDIT_LOG)),
    services: DisputeService = Depends(get_services),
):
    return await services.get_audit_log(dispute_id)
