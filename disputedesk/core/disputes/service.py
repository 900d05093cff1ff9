"""Operation surface consumed by the API layer and any other orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from disputedesk.common.enums import (
    AuditAction,
    Capability,
    ConflictResolution,
    DisputeStatus,
    RealtimeEventType,
)
from disputedesk.common.events import EventBus, EventCallback
from disputedesk.common.exceptions import PermissionDeniedError, ValidationError
from disputedesk.common.logging import get_logger
from disputedesk.common.pagination import PaginatedResponse
from disputedesk.common.permissions import has_capability
from disputedesk.common.simulation import AsyncioScheduler, Scheduler, Simulator
from disputedesk.config import Settings, settings
from disputedesk.core.audit.ledger import AuditLedger
from disputedesk.core.audit.schemas import AuditLogEntry, AuditStats
from disputedesk.core.disputes.conflicts import build_conflict_info
from disputedesk.core.disputes.reconciliation import Reconciler
from disputedesk.core.disputes.repository import DisputeRepository
from disputedesk.core.disputes.schemas import (
    Actor,
    ActorRef,
    ConflictInfo,
    Dispute,
    DisputeFilter,
    DisputeFormData,
    TransitionResult,
    WriteResult,
)
from disputedesk.core.disputes.workflow import WorkflowEngine, available_transitions
from disputedesk.core.drafts.autosave import DraftAutosaveManager
from disputedesk.core.drafts.schemas import Draft
from disputedesk.core.drafts.store import DraftStore
from disputedesk.integrations.transactions import (
    Transaction,
    TransactionDirectory,
    TransactionSearch,
    TransactionSearchParams,
    generate_mock_transactions,
)

logger = get_logger("disputes.service")

# Status moves only through the workflow engine; assignment through assign.
_NOT_EDITABLE = frozenset({"status", "assigned_to", "resolved_by", "resolved_at"})


def _require(actor: Actor, capability: Capability) -> None:
    if not has_capability(actor.role, capability):
        raise PermissionDeniedError(
            f"This action requires the {capability.value} capability"
        )


class DisputeService:
    def __init__(
        self,
        directory: TransactionDirectory,
        repository: DisputeRepository,
        ledger: AuditLedger,
        drafts: DraftStore,
        bus: EventBus,
        scheduler: Scheduler,
        draft_debounce: float = 1.0,
        page_size: int = 10,
    ) -> None:
        self.directory = directory
        self.repository = repository
        self.ledger = ledger
        self.drafts = drafts
        self.bus = bus
        self.scheduler = scheduler
        self.draft_debounce = draft_debounce
        self.page_size = page_size
        self.engine = WorkflowEngine(repository, ledger, Reconciler(directory), bus)
        self.transaction_search = TransactionSearch(directory, page_size)

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def create_dispute(
        self, form_data: DisputeFormData, actor: Actor, is_draft: bool = False
    ) -> Dispute:
        _require(actor, Capability.CREATE_DISPUTE)
        dispute = await self.repository.create(form_data, actor, is_draft=is_draft)

        try:
            await self.ledger.append(
                dispute.id,
                AuditAction.DISPUTE_CREATED,
                actor,
                {
                    "transaction_id": dispute.transaction_id,
                    "requested_amount": dispute.requested_amount,
                    "reason": dispute.reason,
                },
                None,
                dispute.status,
            )
        except Exception:
            logger.exception("Audit append failed after creating %s", dispute.id)

        self.bus.publish(
            RealtimeEventType.STATUS_CHANGED,
            dispute.id,
            {"from_status": None, "new_status": dispute.status.value, "version": dispute.version},
            actor.id,
        )
        return dispute

    async def get_dispute_by_id(self, dispute_id: str) -> Dispute | None:
        return await self.repository.read(dispute_id)

    async def get_disputes(
        self,
        page: int = 1,
        page_size: int | None = None,
        filters: DisputeFilter | None = None,
    ) -> PaginatedResponse[Dispute]:
        return await self.repository.list(page, page_size or self.page_size, filters)

    async def update_dispute(
        self,
        dispute_id: str,
        patch: dict[str, Any],
        expected_version: int,
        actor: Actor,
    ) -> WriteResult:
        _require(actor, Capability.EDIT_DISPUTE)
        blocked = _NOT_EDITABLE.intersection(patch)
        if blocked:
            raise ValidationError(f"Fields cannot be edited directly: {', '.join(sorted(blocked))}")
        if "approved_amount" in patch:
            _require(actor, Capability.ADJUST_AMOUNT)

        result = await self.repository.write(dispute_id, patch, expected_version)

        if result.conflict:
            # Advisory only; the write has already been refused.
            self.bus.publish_conflict(
                dispute_id, result.dispute.version, result.dispute.model_dump(mode="json")
            )
            return result

        before_data = result.previous.model_dump(mode="json")
        after_data = result.dispute.model_dump(mode="json")
        fields = sorted(k for k in patch if before_data.get(k) != after_data.get(k))
        action = (
            AuditAction.AMOUNT_ADJUSTED if fields == ["approved_amount"] else AuditAction.DISPUTE_UPDATED
        )
        try:
            await self.ledger.append(
                dispute_id,
                action,
                actor,
                {"fields": fields, "version": result.dispute.version},
                {k: before_data.get(k) for k in fields},
                {k: after_data.get(k) for k in fields},
            )
        except Exception:
            logger.exception("Audit append failed after updating %s", dispute_id)

        self.bus.publish(
            RealtimeEventType.UPDATED,
            dispute_id,
            {"fields": fields, "version": result.dispute.version},
            actor.id,
        )
        return result

    async def change_status(
        self,
        dispute_id: str,
        new_status: DisputeStatus | str,
        actor: Actor,
        notes: str | None = None,
        approved_amount: float | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        return await self.engine.change_status(
            dispute_id, new_status, actor, notes, approved_amount, expected_version
        )

    async def assign_dispute(
        self,
        dispute_id: str,
        assignee: ActorRef,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        return await self.engine.assign(dispute_id, assignee, actor, expected_version)

    async def delete_dispute(self, dispute_id: str, actor: Actor) -> None:
        _require(actor, Capability.DELETE_DISPUTE)
        dispute = await self.repository.get(dispute_id)
        await self.repository.delete(dispute_id)
        await self.ledger.append(
            dispute_id,
            AuditAction.DISPUTE_DELETED,
            actor,
            {"transaction_id": dispute.transaction_id},
            dispute.status,
            None,
        )

    def available_transitions(self, dispute: Dispute, actor: Actor) -> list[DisputeStatus]:
        return available_transitions(dispute.status, actor.role)

    def count_by_status(self) -> dict[DisputeStatus, int]:
        return self.repository.count_by_status()

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    async def conflict_info(self, local: Dispute) -> ConflictInfo:
        server = await self.repository.get(local.id)
        return build_conflict_info(local, server)

    async def resolve_conflict(
        self,
        dispute_id: str,
        strategy: ConflictResolution | str,
        actor: Actor,
        local_patch: dict[str, Any] | None = None,
    ) -> WriteResult:
        """Settle a lost write: resubmit local changes once, or adopt the server copy."""
        strategy = ConflictResolution(strategy)
        current = await self.repository.get(dispute_id)

        if strategy == ConflictResolution.USE_SERVER:
            result = WriteResult(conflict=False, dispute=current)
        else:
            if not local_patch:
                raise ValidationError("keep_local needs the local changes to reapply")
            result = await self.update_dispute(dispute_id, local_patch, current.version, actor)
            if result.conflict:
                return result

        await self.ledger.append(
            dispute_id,
            AuditAction.CONFLICT_RESOLVED,
            actor,
            {"strategy": strategy, "version": result.dispute.version},
        )
        return result

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def open_draft_session(self, actor: Actor) -> DraftAutosaveManager:
        return DraftAutosaveManager(
            self.drafts, self.ledger, actor, self.scheduler, debounce=self.draft_debounce
        )

    async def resume_draft_session(self, draft_id: str, actor: Actor) -> DraftAutosaveManager:
        session = self.open_draft_session(actor)
        await session.resume(draft_id)
        return session

    async def save_draft(
        self,
        data: dict[str, Any],
        actor: Actor,
        step: int = 0,
        draft_id: str | None = None,
    ) -> Draft:
        draft, created = await self.drafts.save(data, step, draft_id)
        await self.ledger.append(
            draft.id,
            AuditAction.DRAFT_CREATED if created else AuditAction.DRAFT_SAVED,
            actor,
            {"transaction_id": draft.transaction_id, "step": step},
        )
        return draft

    async def get_draft(self, draft_id: str) -> Draft | None:
        return await self.drafts.get(draft_id)

    async def list_drafts(self) -> list[Draft]:
        return await self.drafts.list()

    async def delete_draft(self, draft_id: str, actor: Actor) -> bool:
        removed = await self.drafts.delete(draft_id)
        if removed:
            await self.ledger.append(draft_id, AuditAction.DRAFT_DELETED, actor, {})
        return removed

    async def submit_draft(self, draft_id: str, actor: Actor) -> Dispute:
        session = await self.resume_draft_session(draft_id, actor)
        return await session.submit(self.create_dispute)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def log_action(
        self,
        dispute_id: str,
        action: AuditAction,
        actor: Actor,
        details: dict[str, Any] | None = None,
        previous_value: Any = None,
        new_value: Any = None,
    ) -> AuditLogEntry:
        return await self.ledger.append(dispute_id, action, actor, details, previous_value, new_value)

    async def get_audit_log(self, dispute_id: str) -> list[AuditLogEntry]:
        return await self.ledger.for_dispute(dispute_id)

    async def export_audit_log(self, dispute_id: str | None = None) -> str:
        return await self.ledger.export(dispute_id)

    def audit_stats(self) -> AuditStats:
        return self.ledger.stats()

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    def subscribe(self, dispute_id: str, callback: EventCallback) -> Callable[[], None]:
        return self.bus.subscribe(dispute_id, callback)

    def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        return self.bus.subscribe_all(callback)

    def connect(self) -> None:
        self.bus.connect()

    def disconnect(self) -> None:
        self.bus.disconnect()

    def simulate_external_status_change(
        self, dispute_id: str, new_status: DisputeStatus, actor_id: str
    ) -> None:
        self.bus.publish(
            RealtimeEventType.STATUS_CHANGED,
            dispute_id,
            {"new_status": DisputeStatus(new_status).value},
            actor_id,
        )

    def simulate_conflict(self, dispute_id: str, server_version: int, server_data: dict[str, Any]) -> None:
        self.bus.publish_conflict(dispute_id, server_version, server_data)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        return await self.directory.get_by_id(transaction_id)

    async def search_transactions(
        self, params: TransactionSearchParams, page: int = 1
    ) -> PaginatedResponse[Transaction] | None:
        return await self.transaction_search.run(params, page)


def build_services(
    config: Settings = settings,
    simulator: Simulator | None = None,
    transactions: list[Transaction] | None = None,
    scheduler: Scheduler | None = None,
) -> DisputeService:
    """Wire a fresh, isolated set of stores around one ``DisputeService``."""
    simulator = simulator or Simulator.from_settings(config)
    if transactions is None:
        transactions = generate_mock_transactions(config.SEED_TRANSACTIONS, config.RANDOM_SEED)

    directory = TransactionDirectory(
        transactions,
        simulator=simulator,
        max_retries=config.MAX_RETRIES,
        retry_delay=config.RETRY_DELAY_MS / 1000,
    )
    return DisputeService(
        directory=directory,
        repository=DisputeRepository(directory, simulator),
        ledger=AuditLedger(simulator),
        drafts=DraftStore(simulator),
        bus=EventBus(
            tick_interval=config.REALTIME_TICK_MS / 1000,
            max_queue=config.EVENT_QUEUE_MAX,
        ),
        scheduler=scheduler or AsyncioScheduler(),
        draft_debounce=config.DRAFT_AUTOSAVE_DEBOUNCE_MS / 1000,
        page_size=config.PAGE_SIZE,
    )
