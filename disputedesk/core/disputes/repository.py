"""Dispute repository with optimistic-concurrency version control.

``write`` is the only mutation primitive higher layers use. It compares the
caller's expected version against the stored one and either applies the patch
(bumping the version by exactly one) or hands back the untouched current state
with ``conflict=True``. There are no locks: the comparison and the store
update run without an intervening await, which is the whole concurrency
contract on a single event loop.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pydantic

from disputedesk.common.enums import DisputeStatus, TransactionStatus
from disputedesk.common.exceptions import NotFoundError, ValidationError
from disputedesk.common.logging import get_logger
from disputedesk.common.pagination import PaginatedResponse, paginate
from disputedesk.common.simulation import Simulator
from disputedesk.core.disputes.schemas import (
    Actor,
    ActorRef,
    Dispute,
    DisputeFilter,
    DisputeFormData,
    WriteResult,
)
from disputedesk.integrations.transactions import TransactionDirectory

logger = get_logger("disputes.repository")

# Never taken from a patch; owned by the repository.
PROTECTED_FIELDS = frozenset({"id", "transaction_id", "created_at", "created_by", "version", "updated_at"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DisputeRepository:
    SERVICE = "disputes"

    def __init__(
        self,
        directory: TransactionDirectory,
        simulator: Simulator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._directory = directory
        self._simulator = simulator or Simulator.disabled()
        self._clock = clock
        self._disputes: dict[str, Dispute] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._disputes)

    async def create(
        self, form_data: DisputeFormData, actor: Actor, is_draft: bool = False
    ) -> Dispute:
        await self._simulator.call(self.SERVICE, "create dispute")

        transaction = await self._directory.get_by_id(form_data.transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", form_data.transaction_id)

        status = DisputeStatus.DRAFT if is_draft else DisputeStatus.CREATED
        if status != DisputeStatus.DRAFT:
            transaction = (
                await self._directory.update_status(transaction.id, TransactionStatus.DISPUTED)
                or transaction
            )

        now = self._clock()
        dispute = Dispute(
            id=f"DSP-{next(self._ids):06d}",
            transaction_id=transaction.id,
            transaction=transaction,
            status=status,
            reason=form_data.reason,
            reason_code=form_data.reason_code or form_data.reason.value,
            category=form_data.category or "other",
            priority=form_data.priority,
            description=form_data.description,
            original_amount=transaction.amount,
            requested_amount=form_data.requested_amount,
            claimed_amount=form_data.requested_amount,
            currency=transaction.currency,
            evidence=list(form_data.evidence),
            created_by=ActorRef(id=actor.id, name=actor.name, role=actor.role.value),
            created_at=now,
            updated_at=now,
            version=1,
        )
        self._disputes[dispute.id] = dispute
        logger.info(
            "Created dispute %s for transaction %s (status=%s)",
            dispute.id,
            transaction.id,
            status.value,
        )
        return dispute.model_copy(deep=True)

    async def read(self, dispute_id: str) -> Dispute | None:
        await self._simulator.call(self.SERVICE, "fetch dispute", can_fail=False)
        dispute = self._disputes.get(dispute_id)
        return dispute.model_copy(deep=True) if dispute else None

    async def get(self, dispute_id: str) -> Dispute:
        dispute = await self.read(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", dispute_id)
        return dispute

    async def write(
        self, dispute_id: str, patch: dict[str, Any], expected_version: int
    ) -> WriteResult:
        await self._simulator.call(self.SERVICE, "update dispute")

        current = self._disputes.get(dispute_id)
        if current is None:
            raise NotFoundError("Dispute", dispute_id)

        if current.version != expected_version:
            logger.info(
                "Version conflict on %s: expected v%d, stored v%d",
                dispute_id,
                expected_version,
                current.version,
            )
            return WriteResult(conflict=True, dispute=current.model_copy(deep=True))

        changes = {k: v for k, v in patch.items() if k not in PROTECTED_FIELDS}
        try:
            updated = Dispute.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": self._clock(),
                "version": current.version + 1,
            })
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid dispute update: {e.errors()[0]['msg']}") from e

        self._disputes[dispute_id] = updated
        logger.debug("Wrote %s v%d -> v%d", dispute_id, current.version, updated.version)
        return WriteResult(
            conflict=False,
            dispute=updated.model_copy(deep=True),
            previous=current.model_copy(deep=True),
        )

    async def delete(self, dispute_id: str) -> None:
        await self._simulator.call(self.SERVICE, "delete dispute")
        if self._disputes.pop(dispute_id, None) is None:
            raise NotFoundError("Dispute", dispute_id)
        logger.info("Deleted dispute %s", dispute_id)

    async def list(
        self,
        page: int = 1,
        page_size: int = 10,
        filters: DisputeFilter | None = None,
    ) -> PaginatedResponse[Dispute]:
        await self._simulator.call(self.SERVICE, "list disputes", can_fail=False)
        filters = filters or DisputeFilter()

        matches = []
        # Insertion order is creation order; newest first.
        for dispute in reversed(self._disputes.values()):
            if filters.status and dispute.status != filters.status:
                continue
            if filters.assigned_to and (
                dispute.assigned_to is None or dispute.assigned_to.id != filters.assigned_to
            ):
                continue
            matches.append(dispute.model_copy(deep=True))

        return paginate(matches, page, page_size)

    def count_by_status(self) -> dict[DisputeStatus, int]:
        counts = {status: 0 for status in DisputeStatus}
        for dispute in self._disputes.values():
            counts[dispute.status] += 1
        return counts
