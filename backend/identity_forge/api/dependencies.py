"""Shared FastAPI dependencies and error mapping for the API routers."""
from fastapi import HTTPException, Request

from identity_forge.core.errors import (
    ConfigurationError,
    ContentPolicyError,
    ForgeError,
    ParseError,
    PipelineStateError,
    ProviderError,
    TransportError,
)
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.store import CharacterStore


def get_dispatcher(request: Request) -> ProviderDispatcher:
    """FastAPI dependency: retrieve the ProviderDispatcher from app.state.

    Returns HTTP 503 if it was not initialized at startup.
    """
    dispatcher: ProviderDispatcher | None = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Generation service not initialized.")
    return dispatcher


def get_store(request: Request) -> CharacterStore:
    store: CharacterStore | None = getattr(request.app.state, "character_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Character store not initialized.")
    return store


def http_error(exc: ForgeError) -> HTTPException:
    """Translate a taxonomy error into an HTTPException with a user-safe detail."""
    if isinstance(exc, PipelineStateError):
        status_code = 409
    elif isinstance(exc, ConfigurationError):
        status_code = 503
    elif isinstance(exc, ContentPolicyError):
        status_code = 422
    elif isinstance(exc, ProviderError):
        status_code = 429 if exc.status_code == 429 else 502
    elif isinstance(exc, ParseError):
        status_code = 502
    elif isinstance(exc, TransportError):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=exc.user_message)
