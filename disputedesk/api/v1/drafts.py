from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from disputedesk.api.deps import get_current_actor, get_services, require_capability
from disputedesk.common.enums import Capability
from disputedesk.common.exceptions import NotFoundError
from disputedesk.core.disputes.schemas import Actor, Dispute
from disputedesk.core.disputes.service import DisputeService
from disputedesk.core.drafts.schemas import Draft

router = APIRouter(prefix="/drafts", tags=["Drafts"])


# ---------- Schemas ----------


class DraftSaveRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    step: int = Field(0, ge=0)
    draft_id: str | None = None


# ---------- Endpoints ----------


@router.post("", response_model=Draft, status_code=201)
async def save_draft(
    body: DraftSaveRequest,
    actor: Actor = Depends(require_capability(Capability.CREATE_DISPUTE)),
    services: DisputeService = Depends(get_services),
):
    return await services.save_draft(body.data, actor, step=body.step, draft_id=body.draft_id)


@router.get("", response_model=list[Draft])
async def list_drafts(
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    return await services.list_drafts()


@router.get("/{draft_id}", response_model=Draft)
async def get_draft(
    draft_id: str,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    draft = await services.get_draft(draft_id)
    if draft is None:
        raise NotFoundError("Draft", draft_id)
    return draft


@router.delete("/{draft_id}", status_code=204)
async def delete_draft(
    draft_id: str,
    actor: Actor = Depends(get_current_actor),
    services: DisputeService = Depends(get_services),
):
    if not await services.delete_draft(draft_id, actor):
        raise NotFoundError("Draft", draft_id)
    return Response(status_code=204)


@router.post("/{draft_id}/submit", response_model=Dispute, status_code=201)
async def submit_draft(
    draft_id: str,
    actor: Actor = Depends(require_capability(Capability.CREATE_DISPUTE)),
    services: DisputeService = Depends(get_services),
):
    return await services.submit_draft(draft_id, actor)
