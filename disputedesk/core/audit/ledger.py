"""Append-only audit ledger.

Entries are frozen on append and never updated or removed. Append order is
the total order; every read path returns newest first.
"""

from __future__ import annotations

import copy
import itertools
import json
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel

from disputedesk.common.enums import AuditAction
from disputedesk.common.logging import get_logger
from disputedesk.common.pagination import PaginatedResponse, paginate
from disputedesk.common.simulation import Simulator
from disputedesk.core.audit.schemas import AuditActor, AuditLogEntry, AuditStats

logger = get_logger("audit.ledger")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    return copy.deepcopy(value)


class AuditLedger:
    SERVICE = "audit"

    def __init__(
        self,
        simulator: Simulator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._simulator = simulator or Simulator.disabled()
        self._clock = clock
        self._entries: list[AuditLogEntry] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    async def append(
        self,
        dispute_id: str,
        action: AuditAction,
        actor: Any,
        details: dict[str, Any] | None = None,
        previous_value: Any = None,
        new_value: Any = None,
    ) -> AuditLogEntry:
        await self._simulator.call(self.SERVICE, "append audit entry")

        if isinstance(actor, dict):
            audit_actor = AuditActor.model_validate(actor)
        else:
            audit_actor = AuditActor.model_validate(actor, from_attributes=True)

        entry = AuditLogEntry(
            id=f"AUD-{next(self._ids):08d}",
            dispute_id=dispute_id,
            action=AuditAction(action),
            actor=audit_actor,
            timestamp=self._clock(),
            details={k: _snapshot(v) for k, v in (details or {}).items()},
            previous_value=_snapshot(previous_value),
            new_value=_snapshot(new_value),
        )
        self._entries.append(entry)
        logger.info(
            "Audit %s: %s on %s by %s (%s)",
            entry.id,
            entry.action.value,
            dispute_id,
            audit_actor.name,
            audit_actor.role.value,
        )
        return entry.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def _newest_first(self, entries: Iterable[AuditLogEntry] | None = None) -> list[AuditLogEntry]:
        source = self._entries if entries is None else list(entries)
        return [e.model_copy(deep=True) for e in reversed(source)]

    async def for_dispute(self, dispute_id: str) -> list[AuditLogEntry]:
        await self._simulator.delay()
        return self._newest_first(e for e in self._entries if e.dispute_id == dispute_id)

    async def list(self, page: int = 1, page_size: int = 50) -> PaginatedResponse[AuditLogEntry]:
        await self._simulator.delay()
        return paginate(self._newest_first(), page, page_size)

    async def by_action(self, action: AuditAction) -> list[AuditLogEntry]:
        await self._simulator.delay()
        action = AuditAction(action)
        return self._newest_first(e for e in self._entries if e.action == action)

    async def by_actor(self, actor_id: str) -> list[AuditLogEntry]:
        await self._simulator.delay()
        return self._newest_first(e for e in self._entries if e.actor.id == actor_id)

    async def by_time_range(self, start: datetime, end: datetime) -> list[AuditLogEntry]:
        await self._simulator.delay()
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return self._newest_first(e for e in self._entries if start <= e.timestamp <= end)

    async def export(self, dispute_id: str | None = None) -> str:
        """Serialize entries (optionally one dispute's) as a pretty-printed JSON array."""
        await self._simulator.delay()
        entries = self._entries
        if dispute_id is not None:
            entries = [e for e in entries if e.dispute_id == dispute_id]
        return json.dumps(
            [e.model_dump(mode="json") for e in reversed(entries)],
            indent=2,
        )

    def stats(self) -> AuditStats:
        by_action: Counter[str] = Counter()
        by_actor: Counter[str] = Counter()
        for entry in self._entries:
            by_action[entry.action.value] += 1
            by_actor[entry.actor.name] += 1
        return AuditStats(
            total_entries=len(self._entries),
            entries_by_action=dict(by_action),
            entries_by_actor=dict(by_actor),
        )
