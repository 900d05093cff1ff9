from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response

from disputedesk.api.deps import get_services, require_capability
from disputedesk.common.enums import AuditAction, Capability
from disputedesk.common.exceptions import ValidationError
from disputedesk.common.pagination import PaginatedResponse, paginate
from disputedesk.config import settings
from disputedesk.core.audit.schemas import AuditLogEntry, AuditStats
from disputedesk.core.disputes.schemas import Actor
from disputedesk.core.disputes.service import DisputeService

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=PaginatedResponse[AuditLogEntry])
async def list_audit_entries(
    action: AuditAction | None = Query(None),
    actor_id: str | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.AUDIT_PAGE_SIZE, ge=1, le=500),
    actor: Actor = Depends(require_capability(Capability.VIEW_AUDIT_LOG)),
    services: DisputeService = Depends(get_services),
):
    ledger = services.ledger
    if action is None and actor_id is None and start is None and end is None:
        return await ledger.list(page, page_size)

    if (start is None) != (end is None):
        raise ValidationError("start and end must be given together")

    if start is not None:
        entries = await ledger.by_time_range(start, end)
    elif action is not None:
        entries = await ledger.by_action(action)
    else:
        entries = await ledger.by_actor(actor_id)

    if action is not None:
        entries = [e for e in entries if e.action == action]
    if actor_id is not None:
        entries = [e for e in entries if e.actor.id == actor_id]
    return paginate(entries, page, page_size)


@router.get("/export")
async def export_audit_log(
    dispute_id: str | None = Query(None),
    actor: Actor = Depends(require_capability(Capability.EXPORT_DATA)),
    services: DisputeService = Depends(get_services),
):
    content = await services.export_audit_log(dispute_id)
    filename = f"audit-{dispute_id}.json" if dispute_id else "audit.json"
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/stats", response_model=AuditStats)
async def audit_stats(
    actor: Actor = Depends(require_capability(Capability.VIEW_AUDIT_LOG)),
    services: DisputeService = Depends(get_services),
):
    return services.audit_stats()
