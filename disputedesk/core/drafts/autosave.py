"""Trailing-edge debounced autosave for one dispute-form editing session.

States: idle -> pending (payload waiting for a quiet window) -> saving ->
saved, or error when the store write fails. Every edit inside the window
replaces the pending payload and pushes the deadline back, so a burst of
edits produces a single write carrying the last payload.

Only one save runs at a time. A flush that fires while the session is saving
leaves its payload pending, waits for the running save to finish and then
writes whatever is pending at that point. Submit and delete wait for the
running save too, so nothing reaches the store after the session closes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pydantic

from disputedesk.common.enums import AuditAction, DraftStatus
from disputedesk.common.exceptions import NotFoundError, ValidationError
from disputedesk.common.logging import get_logger
from disputedesk.common.simulation import Scheduler, TimerHandle
from disputedesk.core.audit.ledger import AuditLedger
from disputedesk.core.disputes.schemas import Actor, Dispute, DisputeFormData
from disputedesk.core.drafts.schemas import Draft
from disputedesk.core.drafts.store import DraftStore

logger = get_logger("drafts.autosave")

CreateDispute = Callable[[DisputeFormData, Actor], Awaitable[Dispute]]


class DraftAutosaveManager:
    def __init__(
        self,
        store: DraftStore,
        ledger: AuditLedger,
        actor: Actor,
        scheduler: Scheduler,
        debounce: float = 1.0,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.actor = actor
        self.scheduler = scheduler
        self.debounce = debounce

        self.status = DraftStatus.IDLE
        self.draft: Draft | None = None
        self.last_saved: float | None = None
        self.last_error: str | None = None
        self.deadline: float | None = None

        self._draft_id: str | None = None
        self._pending: tuple[dict[str, Any], int] | None = None
        self._timer: TimerHandle | None = None
        self._closed = False
        # Resolved when the running save finishes, successfully or not.
        self._inflight: asyncio.Future | None = None

    @property
    def draft_id(self) -> str | None:
        return self._draft_id

    @property
    def pending_payload(self) -> dict[str, Any] | None:
        return dict(self._pending[0]) if self._pending else None

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def edit(self, data: dict[str, Any], step: int = 0) -> None:
        """Record the latest form payload and restart the quiet window."""
        if self._closed:
            raise ValidationError("Draft session is closed")

        self._pending = (dict(data), step)
        self._cancel_timer()
        self.deadline = self.scheduler.now() + self.debounce
        self._timer = self.scheduler.call_later(self.debounce, self._on_quiet)
        self.status = DraftStatus.PENDING

    async def _on_quiet(self) -> None:
        self._timer = None
        try:
            await self.flush()
        except Exception:
            # No caller to hand this to; the payload stays pending for the next flush.
            logger.exception("Autosave of draft %s failed", self._draft_id or "(new)")

    async def flush(self) -> Draft | None:
        """Persist the pending payload now, if any."""
        self._cancel_timer()
        await self._wait_for_save()
        return await self._save_pending()

    async def _wait_for_save(self) -> None:
        # Loop: another waiter may have started the next save before we resumed.
        while self._inflight is not None:
            await self._inflight

    async def _save_pending(self) -> Draft | None:
        if self._pending is None or self._closed:
            return self.draft

        payload, step = self._pending
        self._pending = None
        if self._draft_id is None:
            self._draft_id = self.store.next_id()
        self.status = DraftStatus.SAVING
        self._inflight = asyncio.get_running_loop().create_future()

        try:
            draft, created = await self.store.save(payload, step, self._draft_id)
        except Exception as e:
            if self._pending is None:
                self._pending = (payload, step)
            else:
                # Edits made during the save win over the failed payload.
                newer, newer_step = self._pending
                self._pending = ({**payload, **newer}, newer_step)
            self.status = DraftStatus.ERROR
            self.last_error = str(e)
            logger.error("Failed to save draft %s: %s", self._draft_id, e)
            raise
        finally:
            inflight, self._inflight = self._inflight, None
            inflight.set_result(None)

        self.draft = draft
        self.last_saved = self.scheduler.now()
        self.last_error = None
        self.status = DraftStatus.PENDING if self._pending else DraftStatus.SAVED

        try:
            await self.ledger.append(
                draft.id,
                AuditAction.DRAFT_CREATED if created else AuditAction.DRAFT_SAVED,
                self.actor,
                {"transaction_id": draft.transaction_id, "step": step},
            )
        except Exception:
            logger.exception("Audit append failed after saving draft %s", draft.id)
        return draft

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def resume(self, draft_id: str) -> Draft:
        """Continue editing a previously saved draft."""
        self._cancel_timer()
        await self._wait_for_save()
        draft = await self.store.get(draft_id)
        if draft is None:
            raise NotFoundError("Draft", draft_id)

        self._pending = None
        self._draft_id = draft.id
        self.draft = draft
        self.status = DraftStatus.SAVED
        await self.ledger.append(
            draft.id,
            AuditAction.DRAFT_RESUMED,
            self.actor,
            {"step": draft.step, "transaction_id": draft.transaction_id},
        )
        return draft

    async def submit(self, create_dispute: CreateDispute) -> Dispute:
        """Turn the draft (plus unsaved edits) into a dispute and retire the draft.

        A save already running finishes first, so its payload is part of the
        submitted form and it cannot land after the draft is removed.
        """
        if self._closed:
            raise ValidationError("Draft session is closed")
        await self._wait_for_save()
        if self._closed:
            raise ValidationError("Draft session is closed")

        data: dict[str, Any] = dict(self.draft.data) if self.draft else {}
        if self._pending:
            data.update(self._pending[0])
        try:
            form = DisputeFormData.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Draft is incomplete: {e.errors()[0]['msg']}") from e

        self._cancel_timer()
        # Closed while the dispute is created so no autosave can start meanwhile.
        self._closed = True
        try:
            dispute = await create_dispute(form, self.actor)
        except Exception:
            self._closed = False
            raise

        if self._draft_id is not None:
            await self.store.delete(self._draft_id)
        self._close()
        logger.info("Submitted draft %s as dispute %s", self._draft_id or "(unsaved)", dispute.id)
        return dispute

    async def delete(self) -> None:
        self._cancel_timer()
        self._closed = True
        await self._wait_for_save()
        if self._draft_id is not None and await self.store.delete(self._draft_id):
            await self.ledger.append(self._draft_id, AuditAction.DRAFT_DELETED, self.actor, {})
        self._close()

    def start_new(self) -> None:
        """Detach from the current draft; the next flush creates a fresh one."""
        self._cancel_timer()
        self._pending = None
        self._draft_id = None
        self.draft = None
        self.last_saved = None
        self._closed = False
        self.status = DraftStatus.IDLE

    def _close(self) -> None:
        self._pending = None
        self._closed = True
        self.deadline = None
        self.status = DraftStatus.IDLE

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
