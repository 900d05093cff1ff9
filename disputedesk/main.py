from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from disputedesk.api.middleware import RequestLogMiddleware
from disputedesk.api.v1.router import v1_router
from disputedesk.api.v1.ws import router as ws_router
from disputedesk.api.ws import ConnectionManager
from disputedesk.common.logging import get_logger, setup_logging
from disputedesk.config import settings
from disputedesk.core.disputes.service import build_services

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Tests may pre-install an isolated service set.
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    services = app.state.services

    app.state.ws_manager = ConnectionManager()
    services.subscribe_all(app.state.ws_manager.broadcast)
    services.connect()
    logger.info("DisputeDesk started (env=%s)", settings.APP_ENV)
    yield
    services.disconnect()


app = FastAPI(
    title="DisputeDesk API",
    description="Dispute lifecycle and reconciliation engine",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)

# API routes
app.include_router(v1_router, prefix="/api/v1")
app.include_router(ws_router, prefix="/api/v1")


@app.get("/health")
async def health_check(request: Request):
    services = getattr(request.app.state, "services", None)
    directory_ok = services is not None and await services.directory.health_check()
    return {
        "status": "healthy" if directory_ok else "degraded",
        "service": "disputedesk",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }
