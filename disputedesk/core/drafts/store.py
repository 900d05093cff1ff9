"""In-progress dispute forms, kept apart from committed disputes.

Drafts are unversioned: a save simply merges the payload into the draft with
the given id, creating it on first use.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from disputedesk.common.logging import get_logger
from disputedesk.common.simulation import Simulator
from disputedesk.core.drafts.schemas import Draft

logger = get_logger("drafts.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DraftStore:
    SERVICE = "drafts"

    def __init__(
        self,
        simulator: Simulator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._simulator = simulator or Simulator.disabled()
        self._clock = clock
        self._drafts: dict[str, Draft] = {}
        self._ids = itertools.count(1)

    def __contains__(self, draft_id: str) -> bool:
        return draft_id in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)

    def next_id(self) -> str:
        return f"DRAFT-{next(self._ids):04d}"

    async def save(
        self, data: dict[str, Any], step: int = 0, draft_id: str | None = None
    ) -> tuple[Draft, bool]:
        """Upsert a draft. Returns the stored draft and whether it was created."""
        draft_id = draft_id or self.next_id()
        await self._simulator.call(self.SERVICE, "save draft")

        existing = self._drafts.get(draft_id)
        if existing is not None:
            merged = {**existing.data, **data}
            draft = existing.model_copy(update={
                "data": merged,
                "step": step,
                "transaction_id": merged.get("transaction_id") or existing.transaction_id,
                "saved_at": self._clock(),
            })
            created = False
        else:
            draft = Draft(
                id=draft_id,
                transaction_id=data.get("transaction_id"),
                step=step,
                data=dict(data),
                saved_at=self._clock(),
            )
            created = True

        self._drafts[draft_id] = draft
        logger.debug("%s draft %s (step %d)", "Created" if created else "Updated", draft_id, step)
        return draft.model_copy(deep=True), created

    async def get(self, draft_id: str) -> Draft | None:
        await self._simulator.delay()
        draft = self._drafts.get(draft_id)
        return draft.model_copy(deep=True) if draft else None

    async def list(self) -> list[Draft]:
        await self._simulator.delay()
        return [d.model_copy(deep=True) for d in reversed(self._drafts.values())]

    async def find_by_transaction(self, transaction_id: str) -> Draft | None:
        await self._simulator.delay()
        for draft in reversed(self._drafts.values()):
            if draft.transaction_id == transaction_id:
                return draft.model_copy(deep=True)
        return None

    async def delete(self, draft_id: str) -> bool:
        await self._simulator.call(self.SERVICE, "delete draft")
        removed = self._drafts.pop(draft_id, None) is not None
        if removed:
            logger.info("Deleted draft %s", draft_id)
        return removed
