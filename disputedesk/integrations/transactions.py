"""Transaction directory integration client.

The directory is owned by the payments platform. This client keeps an
in-memory keyed store of transactions behind the simulated transport so the
dispute engine can read transactions and write their status back.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, field_validator

from disputedesk.common.enums import TransactionStatus, TransactionType
from disputedesk.common.pagination import PaginatedResponse, paginate
from disputedesk.common.simulation import Simulator
from disputedesk.integrations.base import BaseIntegration

MERCHANTS = [
    "Amazon", "Netflix", "Spotify", "Apple", "Google", "Uber", "Airbnb",
    "Walmart", "Target", "Best Buy", "Home Depot", "Costco", "Starbucks",
]
FIRST_NAMES = ["John", "Jane", "Michael", "Sarah", "David", "Emma", "James", "Emily"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller"]


class Transaction(BaseModel):
    id: str
    user_id: str
    user_name: str
    amount: float
    currency: str = "USD"
    type: TransactionType = TransactionType.PAYMENT
    status: TransactionStatus = TransactionStatus.COMPLETED
    merchant_name: str = ""
    card_last4: str = ""
    account_number: str = ""
    timestamp: datetime
    description: str = ""


class TransactionSearchParams(BaseModel):
    transaction_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    status: TransactionStatus | None = None
    type: TransactionType | None = None
    min_amount: float | None = None
    max_amount: float | None = None

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # Transaction timestamps are UTC; bare dates from query strings are too.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def generate_mock_transactions(
    count: int, seed: int | None = None, now: datetime | None = None
) -> list[Transaction]:
    """Build ``count`` demo transactions spread over the last 30 days, newest first."""
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    window = timedelta(days=30)
    statuses = list(TransactionStatus)
    types = list(TransactionType)

    transactions = []
    for i in range(count):
        merchant = rng.choice(MERCHANTS)
        txn_type = rng.choice(types)
        transactions.append(
            Transaction(
                id=f"TXN-{1000 + i:06d}",
                user_id=f"USR-{100 + (i % 50):05d}",
                user_name=f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
                amount=round(rng.random() * 5000 + 10, 2),
                currency="USD",
                type=txn_type,
                status=rng.choice(statuses),
                merchant_name=merchant,
                card_last4=f"{rng.randrange(10000):04d}",
                account_number=f"****{rng.randrange(10000):04d}",
                timestamp=now - window * rng.random(),
                description=f"{txn_type.value} at {merchant}",
            )
        )
    return sorted(transactions, key=lambda t: t.timestamp, reverse=True)


class TransactionDirectory(BaseIntegration):
    """Keyed transaction store exposing read-by-id, search and status update."""

    def __init__(
        self,
        transactions: list[Transaction] | None = None,
        simulator: Simulator | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **kwargs,
    ) -> None:
        super().__init__(
            "transactions",
            simulator=simulator,
            max_retries=max_retries,
            retry_delay=retry_delay,
            **kwargs,
        )
        self._transactions: dict[str, Transaction] = {}
        for txn in transactions or []:
            self.add(txn)

    async def health_check(self) -> bool:
        self.logger.info("Transaction directory: %d transactions loaded", len(self._transactions))
        return True

    def add(self, transaction: Transaction) -> None:
        self._transactions[transaction.id] = transaction.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._transactions)

    # ------------------------------------------------------------------
    # Reads (retried)
    # ------------------------------------------------------------------

    async def get_by_id(self, transaction_id: str) -> Transaction | None:
        async def _get() -> Transaction | None:
            await self.simulator.call(self.name, "fetch transaction")
            txn = self._transactions.get(transaction_id)
            return txn.model_copy(deep=True) if txn else None

        return await self._with_retry("fetch transaction", _get)

    async def get_by_ids(self, transaction_ids: list[str]) -> list[Transaction]:
        async def _get() -> list[Transaction]:
            await self.simulator.call(self.name, "fetch transactions")
            wanted = set(transaction_ids)
            return [t.model_copy(deep=True) for t in self._transactions.values() if t.id in wanted]

        return await self._with_retry("fetch transactions", _get)

    async def search(
        self, params: TransactionSearchParams, page: int = 1, page_size: int = 10
    ) -> PaginatedResponse[Transaction]:
        async def _search() -> PaginatedResponse[Transaction]:
            await self.simulator.call(self.name, "search transactions")
            matches = [t for t in self._transactions.values() if _matches(t, params)]
            matches.sort(key=lambda t: t.timestamp, reverse=True)
            return paginate([t.model_copy(deep=True) for t in matches], page, page_size)

        return await self._with_retry("search transactions", _search)

    # ------------------------------------------------------------------
    # Writes (never retried)
    # ------------------------------------------------------------------

    async def update_status(
        self, transaction_id: str, status: TransactionStatus
    ) -> Transaction | None:
        await self.simulator.call(self.name, "update transaction status")
        txn = self._transactions.get(transaction_id)
        if txn is None:
            self.logger.warning("Status update for unknown transaction %s ignored", transaction_id)
            return None
        old_status = txn.status
        txn.status = TransactionStatus(status)
        self.logger.info("Transaction %s: %s -> %s", transaction_id, old_status.value, txn.status.value)
        return txn.model_copy(deep=True)


def _matches(txn: Transaction, params: TransactionSearchParams) -> bool:
    if params.transaction_id and params.transaction_id.lower() not in txn.id.lower():
        return False
    if params.user_id and params.user_id.lower() not in txn.user_id.lower():
        return False
    if params.user_name and params.user_name.lower() not in txn.user_name.lower():
        return False
    if params.date_from and txn.timestamp < params.date_from:
        return False
    # date_to covers the whole day it names
    if params.date_to and txn.timestamp > params.date_to + timedelta(days=1):
        return False
    if params.status and txn.status != params.status:
        return False
    if params.type and txn.type != params.type:
        return False
    if params.min_amount is not None and txn.amount < params.min_amount:
        return False
    if params.max_amount is not None and txn.amount > params.max_amount:
        return False
    return True


class TransactionSearch:
    """One search surface with last-request-wins semantics.

    Starting a search cancels the one in flight; a superseded search returns
    None and its result never replaces ``latest``.
    """

    def __init__(self, directory: TransactionDirectory, page_size: int = 10) -> None:
        self._directory = directory
        self._page_size = page_size
        self._current: asyncio.Future | None = None
        self._generation = 0
        self.latest: PaginatedResponse[Transaction] | None = None

    async def run(
        self, params: TransactionSearchParams, page: int = 1
    ) -> PaginatedResponse[Transaction] | None:
        if self._current is not None and not self._current.done():
            self._current.cancel()

        self._generation += 1
        generation = self._generation
        task = asyncio.ensure_future(self._directory.search(params, page, self._page_size))
        self._current = task

        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return None
            raise

        if generation != self._generation:
            return None
        self.latest = result
        return result
