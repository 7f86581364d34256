"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from identity_forge.core.config import EnvSettingsReader, get_settings
from identity_forge.core.logging import setup_logging
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.store import InMemoryCharacterStore

# Setup logging; service and router loggers (identity_forge.*) propagate to the package logger
setup_logging("identity_forge")
logger = setup_logging("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire the dispatcher, store and session registry at startup.

    Credentials are not checked here; they are read per call, so a missing key
    surfaces as a 503 on the first request that needs it.
    """
    app.state.dispatcher = ProviderDispatcher(EnvSettingsReader())
    app.state.character_store = InMemoryCharacterStore()
    app.state.forge_sessions = {}
    logger.info("Services initialized successfully")

    yield
    # Shutdown cleanup (in-memory state only)


# Create FastAPI app
app = FastAPI(
    title="Identity Forge",
    description="Character identity anchors and multi-provider image generation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.frontend_port}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
from identity_forge.api.forge import router as forge_router  # noqa: E402
from identity_forge.api.generation import router as generation_router  # noqa: E402

app.include_router(generation_router)
app.include_router(forge_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Always returns HTTP 200; ``services.dispatcher`` reports whether the
    generation services were wired at startup.
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)

    logger.info("Health check requested")
    return {
        "status": "ok",
        "version": app.version,
        "services": {
            "dispatcher": "ok" if dispatcher is not None else "unavailable",
        },
    }
