"""
Seed script for DisputeDesk.

Builds an in-memory service set with deterministic demo transactions, files a
handful of disputes and walks them through the workflow so every status has
an example, then prints a summary and (optionally) the audit export.

Usage:
    python -m disputedesk.scripts.seed [--seed 42] [--transactions 200] [--export]
"""

import argparse
import asyncio

from disputedesk.common.enums import DisputePriority, DisputeReason, DisputeStatus, UserRole
from disputedesk.common.simulation import Simulator
from disputedesk.config import settings
from disputedesk.core.disputes.schemas import Actor, ActorRef, DisputeFormData
from disputedesk.core.disputes.service import DisputeService, build_services
from disputedesk.integrations.transactions import TransactionSearchParams, generate_mock_transactions

AGENT = Actor(id="USR-001", name="Alex Support", role=UserRole.SUPPORT_AGENT)
ANALYST = Actor(id="USR-002", name="Riley Risk", role=UserRole.RISK_ANALYST)
FINANCE = Actor(id="USR-003", name="Jordan Finance", role=UserRole.FINANCE_OPS)
ADMIN = Actor(id="USR-004", name="Sam Admin", role=UserRole.ADMIN)

SAMPLES = [
    (DisputeReason.DUPLICATE_CHARGE, DisputePriority.HIGH, "Charged twice for the same order"),
    (DisputeReason.PRODUCT_NOT_RECEIVED, DisputePriority.MEDIUM, "Package never arrived"),
    (DisputeReason.UNAUTHORIZED_TRANSACTION, DisputePriority.CRITICAL, "Customer does not recognise this charge"),
    (DisputeReason.INCORRECT_AMOUNT, DisputePriority.LOW, "Billed more than the quoted price"),
    (DisputeReason.CANCELLED_SUBSCRIPTION, DisputePriority.MEDIUM, "Charged after cancelling"),
]


async def seed(services: DisputeService) -> list[str]:
    """File the sample disputes and return their ids."""
    page = await services.directory.search(TransactionSearchParams(), page=1, page_size=len(SAMPLES))
    dispute_ids = []

    for txn, (reason, priority, description) in zip(page.items, SAMPLES):
        form = DisputeFormData(
            transaction_id=txn.id,
            reason=reason,
            priority=priority,
            description=description,
            requested_amount=txn.amount,
        )
        dispute = await services.create_dispute(form, AGENT)
        dispute_ids.append(dispute.id)

    _, in_review, approved, rejected, settled = dispute_ids[:5]

    for dispute_id in (in_review, approved, rejected, settled):
        await services.assign_dispute(
            dispute_id, ActorRef(id=ANALYST.id, name=ANALYST.name, role=ANALYST.role.value), ADMIN
        )
        await services.change_status(dispute_id, DisputeStatus.UNDER_REVIEW, ANALYST)

    await services.change_status(approved, DisputeStatus.APPROVED, ANALYST, notes="Duplicate confirmed")
    await services.change_status(
        rejected, DisputeStatus.REJECTED, ANALYST, notes="Card holder present at time of purchase"
    )
    await services.change_status(settled, DisputeStatus.APPROVED, FINANCE, approved_amount=25.0)
    await services.change_status(settled, DisputeStatus.SETTLED, FINANCE, notes="Partial refund issued")

    await services.save_draft(
        {"transaction_id": page.items[-1].id, "reason": DisputeReason.OTHER.value},
        AGENT,
        step=1,
    )
    return dispute_ids


async def main() -> None:
    parser = argparse.ArgumentParser(description="Seed DisputeDesk demo data")
    parser.add_argument("--seed", type=int, default=settings.RANDOM_SEED or 42)
    parser.add_argument("--transactions", type=int, default=settings.SEED_TRANSACTIONS)
    parser.add_argument("--export", action="store_true", help="print the audit log export")
    args = parser.parse_args()

    services = build_services(
        settings,
        simulator=Simulator.disabled(),
        transactions=generate_mock_transactions(args.transactions, args.seed),
    )
    await seed(services)

    # ==================================================================
    # SUMMARY
    # ==================================================================
    counts = services.count_by_status()
    print(
        f"Seeded: {len(services.directory)} transactions, {len(services.repository)} disputes, "
        f"{len(services.drafts)} drafts, {len(services.ledger)} audit entries"
    )
    for status, count in counts.items():
        print(f"  {status.value:<14} {count}")

    if args.export:
        print(await services.export_audit_log())


if __name__ == "__main__":
    asyncio.run(main())
