import pytest

from disputedesk.common.enums import DisputeStatus, TransactionStatus
from disputedesk.core.disputes.reconciliation import STATUS_MAP, Reconciler, map_dispute_to_transaction_status


def test_every_status_is_mapped():
    assert set(STATUS_MAP) == set(DisputeStatus)


@pytest.mark.parametrize(
    "status,expected",
    [
        (DisputeStatus.DRAFT, None),
        (DisputeStatus.CREATED, TransactionStatus.DISPUTED),
        (DisputeStatus.UNDER_REVIEW, TransactionStatus.DISPUTED),
        (DisputeStatus.APPROVED, TransactionStatus.REFUNDED),
        (DisputeStatus.REJECTED, TransactionStatus.COMPLETED),
        (DisputeStatus.SETTLED, TransactionStatus.REFUNDED),
    ],
)
def test_mapping(status, expected):
    assert map_dispute_to_transaction_status(status) == expected


def test_mapping_accepts_raw_values():
    assert map_dispute_to_transaction_status("approved") == TransactionStatus.REFUNDED


@pytest.mark.asyncio
async def test_apply_writes_even_when_unchanged(services):
    reconciler = Reconciler(services.directory)

    first = await reconciler.apply("TXN-1", DisputeStatus.REJECTED)
    second = await reconciler.apply("TXN-1", DisputeStatus.REJECTED)

    assert first.status == TransactionStatus.COMPLETED
    assert second.status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_apply_draft_is_noop(services):
    reconciler = Reconciler(services.directory)

    assert await reconciler.apply("TXN-1", DisputeStatus.DRAFT) is None
    txn = await services.directory.get_by_id("TXN-1")
    assert txn.status == TransactionStatus.COMPLETED
