from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from disputedesk.common.enums import TransactionStatus, UserRole
from disputedesk.common.simulation import ManualScheduler, Simulator
from disputedesk.config import Settings
from disputedesk.core.disputes.schemas import Actor, DisputeFormData
from disputedesk.core.disputes.service import build_services
from disputedesk.integrations.transactions import Transaction, generate_mock_transactions

TEST_SETTINGS = Settings(
    SIMULATE_LATENCY=False,
    FAILURE_RATE=0.0,
    RETRY_DELAY_MS=0,
    MAX_RETRIES=3,
    REALTIME_TICK_MS=10,
    DRAFT_AUTOSAVE_DEBOUNCE_MS=1000,
    PAGE_SIZE=10,
)


def make_transaction(txn_id: str = "TXN-1", amount: float = 120.0, **overrides) -> Transaction:
    fields = {
        "id": txn_id,
        "user_id": "USR-9001",
        "user_name": "Jane Smith",
        "amount": amount,
        "currency": "USD",
        "status": TransactionStatus.COMPLETED,
        "merchant_name": "Netflix",
        "card_last4": "4242",
        "account_number": "ACC-12345678",
        "timestamp": datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc),
        "description": "Monthly subscription",
    }
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture
def simulator():
    return Simulator.disabled()


@pytest.fixture
def txn_factory():
    return make_transaction


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def services(simulator, scheduler):
    transactions = [make_transaction("TXN-1"), make_transaction("TXN-2", amount=75.5)]
    transactions += generate_mock_transactions(20, seed=7)
    return build_services(
        TEST_SETTINGS,
        simulator=simulator,
        transactions=transactions,
        scheduler=scheduler,
    )


@pytest.fixture
def agent():
    return Actor(id="USR-001", name="Alex Support", role=UserRole.SUPPORT_AGENT)


@pytest.fixture
def analyst():
    return Actor(id="USR-002", name="Riley Risk", role=UserRole.RISK_ANALYST)


@pytest.fixture
def finance():
    return Actor(id="USR-003", name="Jordan Finance", role=UserRole.FINANCE_OPS)


@pytest.fixture
def admin():
    return Actor(id="USR-004", name="Sam Admin", role=UserRole.ADMIN)


@pytest.fixture
def form_data():
    return DisputeFormData(
        transaction_id="TXN-1",
        reason="duplicate_charge",
        priority="high",
        description="Charged twice",
        requested_amount=120.0,
    )


@pytest.fixture
async def dispute(services, agent, form_data):
    return await services.create_dispute(form_data, agent)


@pytest.fixture
async def client(services):
    from disputedesk.main import app

    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.services = None


def actor_headers(actor: Actor) -> dict[str, str]:
    return {
        "X-Actor-Id": actor.id,
        "X-Actor-Name": actor.name,
        "X-Actor-Role": actor.role.value,
    }


@pytest.fixture
def agent_headers(agent):
    return actor_headers(agent)


@pytest.fixture
def analyst_headers(analyst):
    return actor_headers(analyst)


@pytest.fixture
def finance_headers(finance):
    return actor_headers(finance)


@pytest.fixture
def admin_headers(admin):
    return actor_headers(admin)
