from datetime import datetime

from fastapi import APIRouter, Depends, Query

from disputedesk.api.deps import get_services, require_capability
from disputedesk.common.enums import Capability, TransactionStatus, TransactionType
from disputedesk.common.exceptions import NotFoundError
from disputedesk.common.pagination import PaginatedResponse, PaginationParams
from disputedesk.common.permissions import has_capability
from disputedesk.core.disputes.schemas import Actor
from disputedesk.core.disputes.service import DisputeService
from disputedesk.integrations.transactions import Transaction, TransactionSearchParams

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def mask_account_number(account_number: str) -> str:
    if not account_number or account_number.startswith("****"):
        return account_number
    return f"****{account_number[-4:]}"


def mask_name(name: str) -> str:
    return " ".join(part[0] + "*" * (len(part) - 1) for part in name.split() if part)


def _present(txn: Transaction, actor: Actor) -> Transaction:
    if has_capability(actor.role, Capability.VIEW_FULL_DATA):
        return txn
    return txn.model_copy(update={
        "account_number": mask_account_number(txn.account_number),
        "user_name": mask_name(txn.user_name),
    })


@router.get("", response_model=PaginatedResponse[Transaction])
async def search_transactions(
    transaction_id: str | None = Query(None),
    user_id: str | None = Query(None),
    user_name: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    status: TransactionStatus | None = Query(None),
    type: TransactionType | None = Query(None),
    min_amount: float | None = Query(None, ge=0),
    max_amount: float | None = Query(None, ge=0),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_capability(Capability.VIEW_TRANSACTIONS)),
    services: DisputeService = Depends(get_services),
):
    params = TransactionSearchParams(
        transaction_id=transaction_id,
        user_id=user_id,
        user_name=user_name,
        date_from=date_from,
        date_to=date_to,
        status=status,
        type=type,
        min_amount=min_amount,
        max_amount=max_amount,
    )
    # Each request is independent here; last-request-wins applies to a single search surface.
    result = await services.directory.search(params, pagination.page, pagination.page_size)
    result.items = [_present(t, actor) for t in result.items]
    return result


@router.get("/{transaction_id}", response_model=Transaction)
async def get_transaction(
    transaction_id: str,
    actor: Actor = Depends(require_capability(Capability.VIEW_TRANSACTIONS)),
    services: DisputeService = Depends(get_services),
):
    txn = await services.get_transaction(transaction_id)
    if txn is None:
        raise NotFoundError("Transaction", transaction_id)
    return _present(txn, actor)
