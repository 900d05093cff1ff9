from collections.abc import Callable
from datetime import datetime

from disputedesk.common.enums import (
    AuditAction,
    Capability,
    DisputeStatus,
    RealtimeEventType,
    UserRole,
)
from disputedesk.common.events import EventBus
from disputedesk.common.exceptions import AuthorizationDenied, ValidationError
from disputedesk.common.logging import get_logger
from disputedesk.common.permissions import has_capability
from disputedesk.core.audit.ledger import AuditLedger
from disputedesk.core.disputes.reconciliation import Reconciler
from disputedesk.core.disputes.repository import DisputeRepository, utcnow
from disputedesk.core.disputes.schemas import (
    Actor,
    ActorRef,
    Dispute,
    TransitionResult,
    TransitionRule,
)

logger = get_logger("disputes.workflow")

_REVIEWERS = (UserRole.RISK_ANALYST, UserRole.FINANCE_OPS, UserRole.ADMIN)

TRANSITIONS: dict[DisputeStatus, TransitionRule] = {
    DisputeStatus.DRAFT: TransitionRule(
        next_statuses=(DisputeStatus.CREATED,),
        allowed_roles=tuple(UserRole),
    ),
    DisputeStatus.CREATED: TransitionRule(
        next_statuses=(DisputeStatus.UNDER_REVIEW,),
        allowed_roles=_REVIEWERS,
    ),
    DisputeStatus.UNDER_REVIEW: TransitionRule(
        next_statuses=(DisputeStatus.APPROVED, DisputeStatus.REJECTED),
        allowed_roles=_REVIEWERS,
    ),
    DisputeStatus.APPROVED: TransitionRule(
        next_statuses=(DisputeStatus.SETTLED,),
        allowed_roles=(UserRole.FINANCE_OPS, UserRole.ADMIN),
    ),
    DisputeStatus.REJECTED: TransitionRule(
        next_statuses=(DisputeStatus.UNDER_REVIEW,),
        allowed_roles=(UserRole.ADMIN,),
    ),
    DisputeStatus.SETTLED: TransitionRule(next_statuses=(), allowed_roles=()),
}

# Fine-grained capability bound to each target status.
TARGET_CAPABILITIES: dict[DisputeStatus, Capability] = {
    DisputeStatus.UNDER_REVIEW: Capability.REVIEW_DISPUTE,
    DisputeStatus.APPROVED: Capability.APPROVE_DISPUTE,
    DisputeStatus.REJECTED: Capability.REJECT_DISPUTE,
    DisputeStatus.SETTLED: Capability.SETTLE_DISPUTE,
}

TARGET_ACTIONS: dict[DisputeStatus, AuditAction] = {
    DisputeStatus.CREATED: AuditAction.DISPUTE_SUBMITTED,
    DisputeStatus.UNDER_REVIEW: AuditAction.STATUS_CHANGED,
    DisputeStatus.APPROVED: AuditAction.DISPUTE_APPROVED,
    DisputeStatus.REJECTED: AuditAction.DISPUTE_REJECTED,
    DisputeStatus.SETTLED: AuditAction.DISPUTE_SETTLED,
}

RESOLVING_STATUSES = frozenset({DisputeStatus.APPROVED, DisputeStatus.REJECTED, DisputeStatus.SETTLED})


def transition_denial(
    current: DisputeStatus, target: DisputeStatus, role: UserRole
) -> str | None:
    """Return why ``role`` may not move ``current`` -> ``target``, or None if allowed."""
    rule = TRANSITIONS[current]
    if target not in rule.next_statuses:
        return f"Cannot move dispute from {current.value} to {target.value}"
    if role not in rule.allowed_roles:
        return f"Role {role.value} cannot move disputes out of {current.value}"
    capability = TARGET_CAPABILITIES.get(target)
    if capability is not None and not has_capability(role, capability):
        return f"Role {role.value} lacks the {capability.value} capability"
    return None


def can_transition(current: DisputeStatus, target: DisputeStatus, role: UserRole) -> bool:
    return transition_denial(current, target, role) is None


def available_transitions(current: DisputeStatus, role: UserRole) -> list[DisputeStatus]:
    return [s for s in TRANSITIONS[current].next_statuses if can_transition(current, s, role)]


class WorkflowEngine:
    """Executes status transitions against the repository, ledger and directory.

    The write, the audit append and the reconciliation write run as separate
    steps. Once the write commits the new status stands; a later step that
    fails is logged and reported in ``TransitionResult.failed_steps``.
    """

    def __init__(
        self,
        repository: DisputeRepository,
        ledger: AuditLedger,
        reconciler: Reconciler,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.ledger = ledger
        self.reconciler = reconciler
        self.bus = bus
        self._clock = clock

    async def change_status(
        self,
        dispute_id: str,
        new_status: DisputeStatus | str,
        actor: Actor,
        notes: str | None = None,
        approved_amount: float | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        try:
            target = DisputeStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown dispute status: {new_status}")

        current = await self.repository.get(dispute_id)
        if expected_version is None:
            expected_version = current.version
        elif expected_version != current.version:
            # Stale caller: report the conflict before judging the transition
            # against a state it has not seen.
            return TransitionResult(success=False, conflict=True, dispute=current)

        denial = transition_denial(current.status, target, actor.role)
        if denial:
            logger.warning("Transition denied for %s by %s: %s", dispute_id, actor.id, denial)
            raise AuthorizationDenied(denial)

        if target == DisputeStatus.REJECTED and not (notes and notes.strip()):
            raise ValidationError("Rejection notes are required")
        if approved_amount is not None and approved_amount < 0:
            raise ValidationError("Approved amount cannot be negative")

        patch: dict = {"status": target}
        if target in RESOLVING_STATUSES:
            patch.update(resolved_by=actor.id, resolved_at=self._clock(), resolution_notes=notes)
        if approved_amount is not None:
            patch["approved_amount"] = approved_amount

        result = await self.repository.write(dispute_id, patch, expected_version)
        if result.conflict:
            return TransitionResult(success=False, conflict=True, dispute=result.dispute)

        dispute = result.dispute
        failed_steps: list[str] = []

        try:
            await self.ledger.append(
                dispute_id,
                TARGET_ACTIONS[target],
                actor,
                {
                    "from_status": current.status,
                    "to_status": target,
                    "transaction_id": current.transaction_id,
                    "notes": notes,
                    "approved_amount": approved_amount,
                },
                current.status,
                target,
            )
        except Exception:
            logger.exception(
                "Audit append failed after %s moved to %s; status stands", dispute_id, target.value
            )
            failed_steps.append("audit")

        try:
            await self.reconciler.apply(current.transaction_id, target)
        except Exception:
            logger.exception(
                "Reconciliation of %s failed after %s moved to %s; status stands",
                current.transaction_id,
                dispute_id,
                target.value,
            )
            failed_steps.append("reconciliation")

        if self.bus is not None:
            self.bus.publish(
                RealtimeEventType.STATUS_CHANGED,
                dispute_id,
                {
                    "from_status": current.status.value,
                    "new_status": target.value,
                    "version": dispute.version,
                },
                actor.id,
            )

        logger.info(
            "Dispute %s: %s -> %s by %s (v%d)",
            dispute_id,
            current.status.value,
            target.value,
            actor.id,
            dispute.version,
        )
        return TransitionResult(
            success=True,
            dispute=dispute,
            from_status=current.status,
            to_status=target,
            failed_steps=failed_steps,
        )

    # ------------------------------------------------------------------
    # Named transitions; they take the caller's copy and use its version.
    # ------------------------------------------------------------------

    async def submit_for_review(self, dispute: Dispute, actor: Actor) -> TransitionResult:
        if dispute.status != DisputeStatus.CREATED:
            raise ValidationError("Dispute must be in Created status")
        return await self.change_status(
            dispute.id, DisputeStatus.UNDER_REVIEW, actor, expected_version=dispute.version
        )

    async def approve(
        self,
        dispute: Dispute,
        actor: Actor,
        approved_amount: float | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        if dispute.status != DisputeStatus.UNDER_REVIEW:
            raise ValidationError("Dispute must be Under Review")
        return await self.change_status(
            dispute.id,
            DisputeStatus.APPROVED,
            actor,
            notes=notes,
            approved_amount=approved_amount,
            expected_version=dispute.version,
        )

    async def reject(self, dispute: Dispute, actor: Actor, notes: str) -> TransitionResult:
        if dispute.status != DisputeStatus.UNDER_REVIEW:
            raise ValidationError("Dispute must be Under Review")
        return await self.change_status(
            dispute.id, DisputeStatus.REJECTED, actor, notes=notes, expected_version=dispute.version
        )

    async def settle(self, dispute: Dispute, actor: Actor, notes: str | None = None) -> TransitionResult:
        if dispute.status != DisputeStatus.APPROVED:
            raise ValidationError("Dispute must be Approved before settling")
        return await self.change_status(
            dispute.id, DisputeStatus.SETTLED, actor, notes=notes, expected_version=dispute.version
        )

    async def reopen(self, dispute: Dispute, actor: Actor) -> TransitionResult:
        if dispute.status != DisputeStatus.REJECTED:
            raise ValidationError("Only rejected disputes can be reopened")
        return await self.change_status(
            dispute.id,
            DisputeStatus.UNDER_REVIEW,
            actor,
            notes="Dispute reopened for review",
            expected_version=dispute.version,
        )

    async def assign(
        self,
        dispute_id: str,
        assignee: ActorRef,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        if not has_capability(actor.role, Capability.ASSIGN_DISPUTE):
            raise AuthorizationDenied(f"Role {actor.role.value} cannot assign disputes")

        current = await self.repository.get(dispute_id)
        result = await self.repository.write(
            dispute_id,
            {"assigned_to": assignee.model_dump()},
            current.version if expected_version is None else expected_version,
        )
        if result.conflict:
            return TransitionResult(success=False, conflict=True, dispute=result.dispute)

        failed_steps: list[str] = []
        try:
            await self.ledger.append(
                dispute_id,
                AuditAction.DISPUTE_ASSIGNED,
                actor,
                {"assignee_id": assignee.id},
                current.assigned_to,
                assignee,
            )
        except Exception:
            logger.exception("Audit append failed after assigning %s", dispute_id)
            failed_steps.append("audit")

        if self.bus is not None:
            self.bus.publish(
                RealtimeEventType.ASSIGNED,
                dispute_id,
                {"assignee_id": assignee.id, "version": result.dispute.version},
                actor.id,
            )
        return TransitionResult(success=True, dispute=result.dispute, failed_steps=failed_steps)
