"""Static role to capability table supplied by the identity provider."""

from __future__ import annotations

from disputedesk.common.enums import Capability, UserRole

ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.SUPPORT_AGENT: frozenset({
        Capability.VIEW_TRANSACTIONS,
        Capability.VIEW_MASKED_DATA,
        Capability.CREATE_DISPUTE,
        Capability.EDIT_DISPUTE,
        Capability.VIEW_AUDIT_LOG,
    }),
    UserRole.RISK_ANALYST: frozenset({
        Capability.VIEW_TRANSACTIONS,
        Capability.VIEW_MASKED_DATA,
        Capability.VIEW_FULL_DATA,
        Capability.CREATE_DISPUTE,
        Capability.EDIT_DISPUTE,
        Capability.ASSIGN_DISPUTE,
        Capability.REVIEW_DISPUTE,
        Capability.APPROVE_DISPUTE,
        Capability.REJECT_DISPUTE,
        Capability.VIEW_AUDIT_LOG,
    }),
    UserRole.FINANCE_OPS: frozenset({
        Capability.VIEW_TRANSACTIONS,
        Capability.VIEW_FULL_DATA,
        Capability.CREATE_DISPUTE,
        Capability.EDIT_DISPUTE,
        Capability.REVIEW_DISPUTE,
        Capability.APPROVE_DISPUTE,
        Capability.REJECT_DISPUTE,
        Capability.SETTLE_DISPUTE,
        Capability.ADJUST_AMOUNT,
        Capability.VIEW_AUDIT_LOG,
        Capability.EXPORT_DATA,
    }),
    UserRole.ADMIN: frozenset(Capability) - {Capability.VIEW_MASKED_DATA},
}


def has_capability(role: UserRole | str, capability: Capability | str) -> bool:
    try:
        role = UserRole(role)
        capability = Capability(capability)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def capabilities_for(role: UserRole | str) -> frozenset[Capability]:
    try:
        return ROLE_CAPABILITIES[UserRole(role)]
    except (KeyError, ValueError):
        return frozenset()
