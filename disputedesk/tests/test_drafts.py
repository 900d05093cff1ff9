import asyncio

import pytest

from disputedesk.common.enums import AuditAction, DisputeStatus, DraftStatus
from disputedesk.common.exceptions import NotFoundError, TransientNetworkError, ValidationError
from disputedesk.common.simulation import ManualScheduler, Scheduler, Simulator
from disputedesk.core.drafts.autosave import DraftAutosaveManager
from disputedesk.core.drafts.store import DraftStore

COMPLETE_FORM = {
    "transaction_id": "TXN-1",
    "reason": "product_not_received",
    "description": "Never arrived",
    "requested_amount": 50,
}


@pytest.fixture
def session(services, agent):
    return services.open_draft_session(agent)


async def _draft_actions(services, draft_id):
    return [e.action for e in await services.get_audit_log(draft_id)]


def _slow_store(*latencies):
    """Draft store whose calls take the given latencies in order, then none."""
    queue = list(latencies)

    async def sleep(_):
        await asyncio.sleep(queue.pop(0) if queue else 0)

    return DraftStore(Simulator(min_ms=1, max_ms=1, sleep=sleep))


# ---------- Debounce ----------


@pytest.mark.asyncio
async def test_burst_of_edits_saves_once_with_last_payload(services, session, scheduler):
    for i in range(5):
        session.edit({"transaction_id": "TXN-1", "description": f"rev {i}"})
        await scheduler.advance(0.2)

    assert len(services.drafts) == 0
    assert session.status == DraftStatus.PENDING

    await scheduler.advance(1.0)

    assert len(services.drafts) == 1
    draft = await services.get_draft(session.draft_id)
    assert draft.data["description"] == "rev 4"
    assert session.status == DraftStatus.SAVED
    assert await _draft_actions(services, draft.id) == [AuditAction.DRAFT_CREATED]


@pytest.mark.asyncio
async def test_spaced_edits_persist_separately(services, session, scheduler):
    session.edit({"transaction_id": "TXN-1"}, step=0)
    await scheduler.advance(1.5)
    session.edit({"description": "second"}, step=1)
    await scheduler.advance(1.5)

    draft = await services.get_draft(session.draft_id)
    assert draft.step == 1
    assert draft.data == {"transaction_id": "TXN-1", "description": "second"}
    assert await _draft_actions(services, draft.id) == [
        AuditAction.DRAFT_SAVED,
        AuditAction.DRAFT_CREATED,
    ]


@pytest.mark.asyncio
async def test_deadline_moves_with_each_edit(session, scheduler):
    session.edit({"description": "a"})
    assert session.deadline == 1.0

    await scheduler.advance(0.5)
    session.edit({"description": "b"})

    assert session.deadline == 1.5
    assert scheduler.pending == 1


@pytest.mark.asyncio
async def test_flush_forces_pending_save(services, session, scheduler):
    session.edit({"transaction_id": "TXN-1"})

    draft = await session.flush()

    assert draft.id == session.draft_id
    assert scheduler.pending == 0
    assert session.pending_payload is None


@pytest.mark.asyncio
async def test_failed_save_keeps_payload_for_retry(services, simulator, session, scheduler):
    simulator.fail_next("save draft")
    session.edit({"transaction_id": "TXN-1"})

    await scheduler.advance(1.0)

    assert session.status == DraftStatus.ERROR
    assert session.last_error
    assert session.pending_payload == {"transaction_id": "TXN-1"}

    await session.flush()

    assert session.status == DraftStatus.SAVED
    assert len(services.drafts) == 1


@pytest.mark.asyncio
async def test_explicit_flush_failure_raises(simulator, session):
    simulator.fail_next("save draft")
    session.edit({"transaction_id": "TXN-1"})

    with pytest.raises(TransientNetworkError):
        await session.flush()


def test_scheduler_requires_clock_and_timer():
    with pytest.raises(TypeError):
        Scheduler()

    class ClockOnly(Scheduler):
        def now(self):
            return 0.0

    with pytest.raises(TypeError):
        ClockOnly()
    assert isinstance(ManualScheduler(), Scheduler)


# ---------- Overlapping saves ----------


@pytest.mark.asyncio
async def test_overlapping_flushes_keep_newest_payload(services, agent, scheduler):
    store = _slow_store(0.05, 0.01)
    session = DraftAutosaveManager(store, services.ledger, agent, scheduler)
    session.edit({"transaction_id": "TXN-1", "description": "old"})

    first = asyncio.ensure_future(session.flush())
    await asyncio.sleep(0)
    assert session.status == DraftStatus.SAVING

    session.edit({"transaction_id": "TXN-1", "description": "new"})
    await asyncio.gather(first, session.flush())

    draft = await store.get(session.draft_id)
    assert draft.data["description"] == "new"
    assert session.status == DraftStatus.SAVED
    assert session.draft.data["description"] == "new"


@pytest.mark.asyncio
async def test_submit_waits_for_save_in_flight(services, agent, scheduler):
    store = _slow_store(0.05)
    session = DraftAutosaveManager(store, services.ledger, agent, scheduler)
    session.edit({"transaction_id": "TXN-1", "requested_amount": 10})

    saving = asyncio.ensure_future(session.flush())
    await asyncio.sleep(0)
    dispute = await session.submit(services.create_dispute)
    await saving

    assert dispute.transaction_id == "TXN-1"
    assert dispute.requested_amount == 10
    assert len(store) == 0
    assert session.closed


@pytest.mark.asyncio
async def test_submit_before_scheduled_save_starts(services, agent, scheduler):
    store = _slow_store(0.05)
    session = DraftAutosaveManager(store, services.ledger, agent, scheduler)
    session.edit({"transaction_id": "TXN-1", "requested_amount": 10})

    saving = asyncio.ensure_future(session.flush())
    dispute = await session.submit(services.create_dispute)
    await saving

    assert dispute.requested_amount == 10
    assert len(store) == 0


@pytest.mark.asyncio
async def test_delete_waits_for_save_in_flight(services, agent, scheduler):
    store = _slow_store(0.05)
    session = DraftAutosaveManager(store, services.ledger, agent, scheduler)
    session.edit({"transaction_id": "TXN-1"})

    saving = asyncio.ensure_future(session.flush())
    await asyncio.sleep(0)
    await session.delete()
    await saving

    assert len(store) == 0
    assert await _draft_actions(services, session.draft_id) == [
        AuditAction.DRAFT_DELETED,
        AuditAction.DRAFT_CREATED,
    ]


# ---------- Resume, submit, delete ----------


@pytest.mark.asyncio
async def test_resume_logs_resumed_not_created(services, agent, session, scheduler):
    session.edit({"transaction_id": "TXN-1"}, step=2)
    await scheduler.advance(1.0)
    draft_id = session.draft_id

    resumed = await services.resume_draft_session(draft_id, agent)
    resumed.edit({"description": "continued"}, step=3)
    await scheduler.advance(1.0)

    assert resumed.draft_id == draft_id
    assert len(services.drafts) == 1
    assert await _draft_actions(services, draft_id) == [
        AuditAction.DRAFT_SAVED,
        AuditAction.DRAFT_RESUMED,
        AuditAction.DRAFT_CREATED,
    ]


@pytest.mark.asyncio
async def test_resume_unknown_draft(services, agent):
    with pytest.raises(NotFoundError):
        await services.resume_draft_session("DRAFT-9999", agent)


@pytest.mark.asyncio
async def test_submit_creates_dispute_and_retires_draft(services, session, scheduler):
    session.edit(COMPLETE_FORM)
    await scheduler.advance(1.0)
    draft_id = session.draft_id
    session.edit({"description": "Never arrived, tracking shows lost"})

    dispute = await session.submit(services.create_dispute)

    assert dispute.status == DisputeStatus.CREATED
    assert dispute.description == "Never arrived, tracking shows lost"
    assert await services.get_draft(draft_id) is None
    assert session.closed
    assert scheduler.pending == 0

    with pytest.raises(ValidationError):
        session.edit({"description": "too late"})


@pytest.mark.asyncio
async def test_submit_incomplete_draft(session):
    session.edit({"description": "no transaction yet"})

    with pytest.raises(ValidationError):
        await session.submit(lambda form, actor: None)

    assert not session.closed


@pytest.mark.asyncio
async def test_delete_cancels_pending_save(services, session, scheduler):
    session.edit({"transaction_id": "TXN-1"})
    await scheduler.advance(1.0)
    draft_id = session.draft_id
    session.edit({"description": "unsaved"})

    await session.delete()
    await scheduler.advance(5.0)

    assert len(services.drafts) == 0
    assert (await _draft_actions(services, draft_id))[0] == AuditAction.DRAFT_DELETED


@pytest.mark.asyncio
async def test_start_new_detaches(services, session, scheduler):
    session.edit({"transaction_id": "TXN-1"})
    await scheduler.advance(1.0)
    first = session.draft_id

    session.start_new()
    session.edit({"transaction_id": "TXN-2"})
    await scheduler.advance(1.0)

    assert session.draft_id != first
    assert len(services.drafts) == 2


# ---------- Service draft operations ----------


@pytest.mark.asyncio
async def test_save_draft_upserts(services, agent):
    draft = await services.save_draft({"transaction_id": "TXN-1"}, agent, step=0)
    updated = await services.save_draft({"description": "x"}, agent, step=1, draft_id=draft.id)

    assert updated.id == draft.id
    assert updated.data == {"transaction_id": "TXN-1", "description": "x"}
    assert [d.id for d in await services.list_drafts()] == [draft.id]


@pytest.mark.asyncio
async def test_drafts_do_not_touch_transaction(services, agent):
    await services.save_draft({"transaction_id": "TXN-1"}, agent)

    txn = await services.get_transaction("TXN-1")
    assert txn.status == "completed"


@pytest.mark.asyncio
async def test_delete_draft(services, agent):
    draft = await services.save_draft({"transaction_id": "TXN-1"}, agent)

    assert await services.delete_draft(draft.id, agent) is True
    assert await services.delete_draft(draft.id, agent) is False


@pytest.mark.asyncio
async def test_submit_draft(services, agent):
    draft = await services.save_draft(COMPLETE_FORM, agent)

    dispute = await services.submit_draft(draft.id, agent)

    assert dispute.transaction_id == "TXN-1"
    assert await services.get_draft(draft.id) is None
