from disputedesk.common.enums import DisputeStatus, TransactionStatus
from disputedesk.common.logging import get_logger
from disputedesk.integrations.transactions import Transaction, TransactionDirectory

logger = get_logger("disputes.reconciliation")

# Dispute status -> status the disputed transaction must carry.
# Draft disputes never touch the transaction.
STATUS_MAP: dict[DisputeStatus, TransactionStatus | None] = {
    DisputeStatus.DRAFT: None,
    DisputeStatus.CREATED: TransactionStatus.DISPUTED,
    DisputeStatus.UNDER_REVIEW: TransactionStatus.DISPUTED,
    DisputeStatus.APPROVED: TransactionStatus.REFUNDED,
    DisputeStatus.REJECTED: TransactionStatus.COMPLETED,
    DisputeStatus.SETTLED: TransactionStatus.REFUNDED,
}


def map_dispute_to_transaction_status(status: DisputeStatus | str) -> TransactionStatus | None:
    return STATUS_MAP[DisputeStatus(status)]


class Reconciler:
    def __init__(self, directory: TransactionDirectory) -> None:
        self._directory = directory

    async def apply(self, transaction_id: str, status: DisputeStatus) -> Transaction | None:
        """Write the mapped status onto the transaction, even if already equal."""
        target = map_dispute_to_transaction_status(status)
        if target is None:
            logger.debug("No reconciliation for %s (dispute status %s)", transaction_id, status)
            return None
        return await self._directory.update_status(transaction_id, target)
