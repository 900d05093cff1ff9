from fastapi import Depends, Header, Request

from disputedesk.common.enums import Capability, UserRole
from disputedesk.common.exceptions import PermissionDeniedError
from disputedesk.common.permissions import has_capability
from disputedesk.core.disputes.schemas import Actor
from disputedesk.core.disputes.service import DisputeService


def get_services(request: Request) -> DisputeService:
    return request.app.state.services


async def get_current_actor(
    x_actor_id: str = Header(..., description="Caller id from the identity provider"),
    x_actor_name: str = Header("", description="Display name"),
    x_actor_role: str = Header(..., description="One of the UserRole values"),
) -> Actor:
    try:
        role = UserRole(x_actor_role)
    except ValueError:
        raise PermissionDeniedError(f"Unknown role: {x_actor_role}")
    return Actor(id=x_actor_id, name=x_actor_name or x_actor_id, role=role)


def require_capability(*capabilities: Capability):
    async def capability_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        missing = [c.value for c in capabilities if not has_capability(actor.role, c)]
        if missing:
            raise PermissionDeniedError(
                f"This action requires the following capabilities: {', '.join(missing)}"
            )
        return actor

    return capability_checker
