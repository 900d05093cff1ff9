"""DisputeDesk integration clients.

Clients implement ``BaseIntegration`` and run every call through the
injectable ``Simulator`` transport instead of a real network.
"""

from disputedesk.integrations.base import BaseIntegration
from disputedesk.integrations.transactions import (
    Transaction,
    TransactionDirectory,
    TransactionSearch,
    TransactionSearchParams,
)

__all__ = [
    "BaseIntegration",
    "Transaction",
    "TransactionDirectory",
    "TransactionSearch",
    "TransactionSearchParams",
]
