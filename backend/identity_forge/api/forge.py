"""Anchor pipeline API router.

Each session wraps one AnchorPipeline held in process memory. Stage errors map
to 409, provider failures to 5xx/422, all with sanitized messages.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from identity_forge.api.dependencies import get_dispatcher, get_store, http_error
from identity_forge.core.errors import ForgeError, PipelineStateError
from identity_forge.models.character import CharacterDNA, GalleryItem
from identity_forge.models.forge import (
    CharacterGenerateRequest,
    CreateSessionRequest,
    EditCharacterRequest,
    PromptsUpdate,
    SessionState,
)
from identity_forge.services.anchored import generate_for_character
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.pipeline import AnchorPipeline
from identity_forge.services.store import CharacterStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forge", tags=["forge"])


def get_sessions(request: Request) -> dict[str, AnchorPipeline]:
    sessions: dict[str, AnchorPipeline] | None = getattr(request.app.state, "forge_sessions", None)
    if sessions is None:
        sessions = {}
        request.app.state.forge_sessions = sessions
    return sessions


def _session_state(session_id: str, pipeline: AnchorPipeline) -> SessionState:
    return SessionState(
        id=session_id,
        stage=pipeline.stage.value,
        name=pipeline.name,
        blueprint=pipeline.blueprint,
        headshot_prompt=pipeline.headshot_prompt,
        body_prompt=pipeline.body_prompt,
        anchor_headshot=pipeline.anchor_headshot,
        anchor_body=pipeline.anchor_body,
        can_generate_body=pipeline.can_generate_body,
        character_id=pipeline.character_id,
        last_error=pipeline.last_error,
    )


def _get_pipeline(session_id: str, sessions: dict[str, AnchorPipeline]) -> AnchorPipeline:
    pipeline = sessions.get(session_id)
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return pipeline


def _fail(exc: ForgeError, target_id: str, action: str) -> HTTPException:
    logger.warning(
        "%s failed for %s: %s",
        action,
        target_id,
        exc.message,
        extra={"operation": action, "error_type": type(exc).__name__},
    )
    return http_error(exc)


@router.post("/sessions", response_model=SessionState, status_code=201)
async def create_session(
    body: CreateSessionRequest,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    """Start a pipeline in the upload stage with name and photo set.

    Raises:
        HTTPException 422: Blank name or undecodable photo.
    """
    pipeline = AnchorPipeline(dispatcher, provider=body.provider, model=body.model)
    try:
        pipeline.set_name(body.name)
        pipeline.upload_photo(body.photo)
    except PipelineStateError as exc:
        raise HTTPException(status_code=422, detail=exc.user_message) from exc

    session_id = uuid.uuid4().hex
    sessions[session_id] = pipeline
    logger.info("forge session created: %s", session_id)
    return _session_state(session_id, pipeline)


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    return _session_state(session_id, _get_pipeline(session_id, sessions))


@router.post("/sessions/{session_id}/analyze", response_model=SessionState)
async def analyze(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    """Extract the blueprint and synthesize both prompts (upload -> edit_prompts)."""
    pipeline = _get_pipeline(session_id, sessions)
    try:
        await pipeline.analyze()
    except ForgeError as exc:
        raise _fail(exc, session_id, "analyze") from exc
    return _session_state(session_id, pipeline)


@router.put("/sessions/{session_id}/prompts", response_model=SessionState)
async def update_prompts(
    session_id: str,
    body: PromptsUpdate,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    """Apply attribute overrides first, then any explicit prompt text."""
    pipeline = _get_pipeline(session_id, sessions)
    try:
        if body.attributes is not None:
            pipeline.override_blueprint(body.attributes)
        pipeline.edit_prompts(headshot=body.headshot_prompt, body=body.body_prompt)
    except ForgeError as exc:
        raise _fail(exc, session_id, "update_prompts") from exc
    return _session_state(session_id, pipeline)


@router.post("/sessions/{session_id}/generate", response_model=SessionState)
async def begin_generation(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    pipeline = _get_pipeline(session_id, sessions)
    try:
        pipeline.begin_generation()
    except ForgeError as exc:
        raise _fail(exc, session_id, "begin_generation") from exc
    return _session_state(session_id, pipeline)


@router.post("/sessions/{session_id}/headshot", response_model=SessionState)
async def generate_headshot(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    pipeline = _get_pipeline(session_id, sessions)
    try:
        await pipeline.generate_headshot()
    except ForgeError as exc:
        raise _fail(exc, session_id, "generate_headshot") from exc
    return _session_state(session_id, pipeline)


@router.post("/sessions/{session_id}/body", response_model=SessionState)
async def generate_body(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    """Generate the body anchor from this session's confirmed headshot.

    Raises:
        HTTPException 409: No headshot has been generated yet.
    """
    pipeline = _get_pipeline(session_id, sessions)
    try:
        confirmed = pipeline.confirmed_headshot
        if confirmed is None:
            raise PipelineStateError("Generate the headshot first")
        await pipeline.generate_body(confirmed)
    except ForgeError as exc:
        raise _fail(exc, session_id, "generate_body") from exc
    return _session_state(session_id, pipeline)


@router.post("/sessions/{session_id}/review", response_model=SessionState)
async def review(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
) -> SessionState:
    pipeline = _get_pipeline(session_id, sessions)
    try:
        pipeline.review()
    except ForgeError as exc:
        raise _fail(exc, session_id, "review") from exc
    return _session_state(session_id, pipeline)


@router.post("/sessions/{session_id}/save", response_model=CharacterDNA)
async def save(
    session_id: str,
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
    store: CharacterStore = Depends(get_store),
) -> CharacterDNA:
    """Persist the character and its two gallery items; the session ends here."""
    pipeline = _get_pipeline(session_id, sessions)
    try:
        character = pipeline.save(store)
    except ForgeError as exc:
        raise _fail(exc, session_id, "save") from exc
    del sessions[session_id]
    return character


@router.post("/characters/{character_id}/edit", response_model=SessionState, status_code=201)
async def edit_character(
    character_id: str,
    body: Optional[EditCharacterRequest] = None,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    sessions: dict[str, AnchorPipeline] = Depends(get_sessions),
    store: CharacterStore = Depends(get_store),
) -> SessionState:
    """Open a stored character in a new session at the review stage."""
    character = store.get_character(character_id)
    if character is None:
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    options = body or EditCharacterRequest()
    pipeline = AnchorPipeline.from_character(
        dispatcher, character, provider=options.provider, model=options.model
    )
    session_id = uuid.uuid4().hex
    sessions[session_id] = pipeline
    logger.info("forge session %s opened for character %s", session_id, character_id)
    return _session_state(session_id, pipeline)


@router.post("/characters/{character_id}/generate", response_model=GalleryItem, status_code=201)
async def generate_with_character(
    character_id: str,
    body: CharacterGenerateRequest,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    store: CharacterStore = Depends(get_store),
) -> GalleryItem:
    """Generate a scene, reference sheet or insertion anchored on the character.

    Raises:
        HTTPException 404: Unknown character.
        HTTPException 422/502/503: Provider failure, mapped like the session endpoints.
    """
    character = store.get_character(character_id)
    if character is None:
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    try:
        return await generate_for_character(
            dispatcher,
            store,
            character,
            body.kind,
            prompt=body.prompt,
            style=body.style,
            aspect_ratio=body.aspect_ratio,
            scene_image=body.scene_image,
            provider=body.provider,
            model=body.model,
        )
    except ForgeError as exc:
        raise _fail(exc, character_id, f"character_{body.kind.value}") from exc
