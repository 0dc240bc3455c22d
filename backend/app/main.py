import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from api.settings import router as settings_router
from api.custom_models import router as custom_models_router
from api.generation import router as generation_router
from api.workflow import router as workflow_router
from core.bridge import HttpBridge
from services.custom_models import CustomModelStore
from services.generation.invoker import GenerationInvoker
from services.generation.resolver import ProviderResolver
from services.settings_store import SettingsService
from services.storage import StorageAdapter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("creator.main")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creator backend starting... DEBUG=%s", settings.DEBUG)

    # Storage (durable backend opens lazily on first access)
    storage = StorageAdapter()
    app.state.storage = storage

    settings_service = SettingsService(storage)
    await settings_service.load()
    app.state.settings_service = settings_service

    custom_models = CustomModelStore(storage)
    await custom_models.load()
    app.state.custom_models = custom_models
    logger.info("Storage ready (durable=%s)", storage.durable)

    # Generation
    bridge = HttpBridge(timeout=settings.BRIDGE_TIMEOUT)
    resolver = ProviderResolver(lambda: settings_service.snapshot)
    app.state.bridge = bridge
    app.state.invoker = GenerationInvoker(resolver, bridge)

    yield

    # Shutdown
    logger.info("Creator backend shutting down...")
    await bridge.close()
    await storage.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Next Creator API",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(settings_router)
app.include_router(custom_models_router)
app.include_router(generation_router)
app.include_router(workflow_router)


@app.get("/api/health")
async def health():
    storage = getattr(app.state, "storage", None)
    return {
        "status": "ok",
        "version": VERSION,
        "durable_store": bool(storage and storage.durable),
    }
