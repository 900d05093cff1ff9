from fastapi import APIRouter

from disputedesk.api.v1.audit import router as audit_router
from disputedesk.api.v1.disputes import router as disputes_router
from disputedesk.api.v1.drafts import router as drafts_router
from disputedesk.api.v1.transactions import router as transactions_router

v1_router = APIRouter()

v1_router.include_router(transactions_router)
v1_router.include_router(disputes_router)
v1_router.include_router(drafts_router)
v1_router.include_router(audit_router)
