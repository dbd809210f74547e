# callrelay/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from callrelay import settings
from callrelay.storage.base import CallRecordStore, StoreError
from callrelay.storage.memory import MemoryStore

# Providers
from callrelay.providers.base import MessagingProvider  # noop/dry-run provider
from callrelay.providers.whatsapp import WhatsAppGatewayProvider

# Core services
from callrelay.services.audit import RequestBuffer
from callrelay.services.dispatcher import OutboundDispatcher
from callrelay.services.reconcile import ReconciliationEngine

# Routers
from callrelay.routers.admin import router as admin_router
from callrelay.routers.api import router as api_router
from callrelay.routers.webhooks import router as webhooks_router


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("callrelay")


# -----------------------------------------------------------------------------
# Store / provider selection
# -----------------------------------------------------------------------------
def build_store() -> CallRecordStore:
    if settings.STORE_BACKEND == "memory" or not settings.DATABASE_URL:
        logger.warning("Store: in-memory (nothing survives a restart)")
        return MemoryStore()

    from callrelay.storage.db import SessionLocal, engine
    from callrelay.storage.repository import SqlStore

    store = SqlStore(SessionLocal, engine)
    store.create_all()
    logger.info("Store: SQL %s", engine.url.render_as_string(hide_password=True))
    return store


def build_provider() -> MessagingProvider:
    gateway = WhatsAppGatewayProvider(dry_run=settings.DRY_RUN)
    if gateway.is_enabled():
        logger.info("Provider: WhatsApp gateway (dry_run=%s) endpoints=%s", settings.DRY_RUN, gateway.endpoints())
        return gateway
    logger.warning("Provider: DRY-RUN base provider (WhatsApp gateway not configured)")
    return MessagingProvider(dry_run=True)  # base provider is always dry-run


def init_state(app: FastAPI, store: CallRecordStore = None, provider: MessagingProvider = None) -> None:
    store = store or build_store()
    provider = provider or build_provider()
    app.state.env = settings.APP_ENV
    app.state.store = store
    app.state.provider = provider
    app.state.buffer = RequestBuffer(settings.REQUEST_BUFFER_SIZE)
    app.state.dispatcher = OutboundDispatcher(provider, store)
    app.state.engine = ReconciliationEngine(store)


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
app = FastAPI(title="Call Relay")

app.include_router(admin_router)
app.include_router(api_router)
app.include_router(webhooks_router)

init_state(app)


@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    logger.error("store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.head("/healthz")
def healthz_head():
    return {}


@app.get("/health")
def health(request: Request):
    st = request.app.state
    return JSONResponse({"ok": True, "store": st.store.backend, "dry_run": st.dispatcher.dry_run})
