"""Anchor pipeline: forges the headshot/body identity anchors for a character.

Stages run strictly in order::

    upload -> analyzing -> edit_prompts -> generating -> review -> saved

The body anchor must be generated from a headshot produced by this pipeline.
That dependency is carried by :class:`ConfirmedHeadshot`, which only
``generate_headshot`` (or edit-mode re-entry of a stored character) can create.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from identity_forge.core.data_uri import parse_data_uri
from identity_forge.core.errors import ParseError, PipelineStateError, classify_error
from identity_forge.models.character import (
    CharacterAttributes,
    CharacterBlueprint,
    CharacterDNA,
    GalleryItem,
)
from identity_forge.models.generation import AspectRatio, GenerationRequest, Provider
from identity_forge.services.blueprint import apply_overrides
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.prompts import anchor_body_prompt, full_body_prompt, headshot_prompt
from identity_forge.services.store import CharacterStore

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 50

_CONFIRM_TOKEN = object()


class PipelineStage(str, Enum):
    upload = "upload"
    analyzing = "analyzing"
    edit_prompts = "edit_prompts"
    generating = "generating"
    review = "review"
    saved = "saved"


@dataclass(frozen=True)
class ConfirmedHeadshot:
    """A headshot anchor known to come from a successful generation.

    ``prompt`` is the text that produced ``image``; it is re-sent with the body
    request as the identity block.
    """

    image: str
    prompt: str
    _token: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._token is not _CONFIRM_TOKEN:
            raise TypeError("ConfirmedHeadshot is only created by AnchorPipeline.generate_headshot()")


def _now_ms() -> int:
    return int(time.time() * 1000)


class AnchorPipeline:
    """Stateful flow from one reference photo to a saved CharacterDNA.

    Overlapping calls are not coordinated: two in-flight generations of the same
    anchor both complete and the later one wins. A failed call never clears an
    anchor produced earlier.
    """

    def __init__(
        self,
        dispatcher: ProviderDispatcher,
        provider: Optional[Provider] = None,
        model: Optional[str] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.provider = provider
        self.model = model

        self.stage = PipelineStage.upload
        self.name: str = ""
        self.photo: Optional[str] = None
        self.blueprint: Optional[CharacterBlueprint] = None
        self.headshot_prompt: str = ""
        self.body_prompt: str = ""
        self.anchor_headshot: Optional[str] = None
        self.anchor_body: Optional[str] = None
        self.last_error: Optional[str] = None

        self._confirmed: Optional[ConfirmedHeadshot] = None
        # Kept across edit-mode re-entry so a re-save updates the same character
        self.character_id: Optional[str] = None
        self.created_at: Optional[int] = None

    @classmethod
    def from_character(
        cls,
        dispatcher: ProviderDispatcher,
        character: CharacterDNA,
        provider: Optional[Provider] = None,
        model: Optional[str] = None,
    ) -> "AnchorPipeline":
        """Re-enter a stored character straight at the review stage.

        Prompts are rebuilt from the stored blueprint; manual prompt edits made
        before the original save are not stored and therefore not restored.
        """
        pipeline = cls(dispatcher, provider=provider, model=model)
        pipeline.character_id = character.id
        pipeline.created_at = character.created_at
        pipeline.name = character.name
        pipeline.blueprint = character.blueprint
        pipeline.headshot_prompt = headshot_prompt(character.blueprint)
        pipeline.body_prompt = full_body_prompt(character.blueprint)
        pipeline.anchor_headshot = character.anchor_headshot
        pipeline.anchor_body = character.anchor_body
        pipeline._confirmed = ConfirmedHeadshot(
            image=character.anchor_headshot,
            prompt=pipeline.headshot_prompt,
            _token=_CONFIRM_TOKEN,
        )
        pipeline.stage = PipelineStage.review
        return pipeline

    # ------------------------------------------------------------------
    # Stage guards
    # ------------------------------------------------------------------

    def _require(self, *stages: PipelineStage) -> None:
        if self.stage not in stages:
            allowed = ", ".join(stage.value for stage in stages)
            raise PipelineStateError(f"Action not allowed in stage '{self.stage.value}' (expected {allowed})")

    @property
    def can_analyze(self) -> bool:
        return self.stage is PipelineStage.upload and bool(self.name) and self.photo is not None

    @property
    def can_begin_generation(self) -> bool:
        return (
            self.stage is PipelineStage.edit_prompts
            and bool(self.headshot_prompt.strip())
            and bool(self.body_prompt.strip())
        )

    @property
    def confirmed_headshot(self) -> Optional[ConfirmedHeadshot]:
        return self._confirmed

    @property
    def can_generate_body(self) -> bool:
        return self.stage in (PipelineStage.generating, PipelineStage.review) and self._confirmed is not None

    @property
    def can_review(self) -> bool:
        return self.anchor_headshot is not None and self.anchor_body is not None

    # ------------------------------------------------------------------
    # upload
    # ------------------------------------------------------------------

    def set_name(self, name: str) -> None:
        if self.stage is PipelineStage.saved:
            raise PipelineStateError("Character already saved")
        name = name.strip()
        if not name:
            raise PipelineStateError("Character name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise PipelineStateError(f"Character name must be {MAX_NAME_LENGTH} characters or less")
        self.name = name

    def upload_photo(self, photo: str) -> None:
        self._require(PipelineStage.upload)
        try:
            parse_data_uri(photo)
        except ValueError as exc:
            raise PipelineStateError(f"Reference photo is not a valid image: {exc}") from exc
        self.photo = photo

    # ------------------------------------------------------------------
    # analyzing
    # ------------------------------------------------------------------

    async def analyze(self) -> CharacterBlueprint:
        """Extract the blueprint and synthesize both prompts.

        On failure the pipeline returns to ``upload`` with ``last_error`` set and
        the error is re-raised; nothing is retried.
        """
        self._require(PipelineStage.upload)
        if not self.can_analyze:
            raise PipelineStateError("A character name and a reference photo are required")
        assert self.photo is not None

        self.stage = PipelineStage.analyzing
        self.last_error = None
        try:
            blueprint = await self.dispatcher.analyze_image(self.photo)
        except Exception as exc:
            mapped = classify_error(exc)
            self.stage = PipelineStage.upload
            self.last_error = mapped.user_message
            logger.error(
                "analysis failed for %s: %s",
                self.name,
                mapped.message,
                extra={"stage": PipelineStage.analyzing.value, "error_type": type(mapped).__name__},
            )
            if mapped is exc:
                raise
            raise mapped from exc

        self.blueprint = blueprint
        self.headshot_prompt = headshot_prompt(blueprint)
        self.body_prompt = full_body_prompt(blueprint)
        self.stage = PipelineStage.edit_prompts
        logger.info("analysis complete for %s", self.name, extra={"stage": self.stage.value})
        return blueprint

    # ------------------------------------------------------------------
    # edit_prompts
    # ------------------------------------------------------------------

    def edit_prompts(self, headshot: Optional[str] = None, body: Optional[str] = None) -> None:
        """Replace either prompt.

        Blank text is only accepted during ``edit_prompts``, where
        ``begin_generation`` still gates it; later stages generate straight
        from the stored prompts.
        """
        self._require(PipelineStage.edit_prompts, PipelineStage.generating, PipelineStage.review)
        if self.stage is not PipelineStage.edit_prompts:
            for label, text in (("headshot", headshot), ("body", body)):
                if text is not None and not text.strip():
                    raise PipelineStateError(f"The {label} prompt cannot be empty")
        if headshot is not None:
            self.headshot_prompt = headshot
        if body is not None:
            self.body_prompt = body

    def override_blueprint(self, attributes: CharacterAttributes) -> CharacterBlueprint:
        """Apply manual attribute overrides and rebuild both prompts from the result."""
        self._require(PipelineStage.edit_prompts)
        assert self.blueprint is not None
        self.blueprint = apply_overrides(self.blueprint, attributes)
        self.headshot_prompt = headshot_prompt(self.blueprint)
        self.body_prompt = full_body_prompt(self.blueprint)
        return self.blueprint

    def begin_generation(self) -> None:
        self._require(PipelineStage.edit_prompts)
        if not self.can_begin_generation:
            raise PipelineStateError("Both the headshot and the body prompt are required")
        self.stage = PipelineStage.generating

    # ------------------------------------------------------------------
    # generating
    # ------------------------------------------------------------------

    async def generate_headshot(self) -> ConfirmedHeadshot:
        """Generate (or regenerate) the 1:1 headshot anchor.

        Regenerating does not invalidate an existing body anchor.
        """
        self._require(PipelineStage.generating, PipelineStage.review)
        prompt = self.headshot_prompt
        request = GenerationRequest(
            prompt=prompt,
            aspect_ratio=AspectRatio.square,
            provider=self.provider,
            model=self.model,
        )
        image = await self._generate_anchor(request, "headshot")
        self.anchor_headshot = image
        self._confirmed = ConfirmedHeadshot(image=image, prompt=prompt, _token=_CONFIRM_TOKEN)
        return self._confirmed

    async def generate_body(self, headshot: ConfirmedHeadshot) -> str:
        """Generate (or regenerate) the 9:16 body anchor from a confirmed headshot."""
        self._require(PipelineStage.generating, PipelineStage.review)
        if not isinstance(headshot, ConfirmedHeadshot):
            raise PipelineStateError("Generate the headshot first")
        request = GenerationRequest(
            prompt=anchor_body_prompt(headshot.prompt, self.body_prompt),
            aspect_ratio=AspectRatio.tall,
            character_reference=headshot.image,
            provider=self.provider,
            model=self.model,
        )
        image = await self._generate_anchor(request, "body")
        self.anchor_body = image
        return image

    async def _generate_anchor(self, request: GenerationRequest, anchor: str) -> str:
        self.last_error = None
        try:
            result = await self.dispatcher.generate(request)
            if result.image is None:
                raise ParseError(f"Model returned text but no image data: {(result.text or '')[:100]}")
        except Exception as exc:
            mapped = classify_error(exc)
            self.last_error = mapped.user_message
            logger.error(
                "%s generation failed for %s: %s",
                anchor,
                self.name,
                mapped.message,
                extra={"stage": self.stage.value, "error_type": type(mapped).__name__},
            )
            if mapped is exc:
                raise
            raise mapped from exc
        logger.info("%s anchor generated for %s", anchor, self.name, extra={"stage": self.stage.value})
        return result.image

    # ------------------------------------------------------------------
    # review / save
    # ------------------------------------------------------------------

    def review(self) -> None:
        self._require(PipelineStage.generating, PipelineStage.review)
        if not self.can_review:
            raise PipelineStateError("Both anchors must be generated before review")
        self.stage = PipelineStage.review

    def save(self, store: CharacterStore) -> CharacterDNA:
        """Persist the character plus one gallery item per anchor and finish."""
        self._require(PipelineStage.review)
        if not self.name:
            raise PipelineStateError("Character name is required")
        assert self.blueprint is not None
        assert self.anchor_headshot is not None and self.anchor_body is not None

        now = _now_ms()
        character = CharacterDNA(
            id=self.character_id or uuid.uuid4().hex,
            name=self.name,
            created_at=self.created_at or now,
            anchor_headshot=self.anchor_headshot,
            anchor_body=self.anchor_body,
            blueprint=self.blueprint,
        )
        store.save_character(character)
        store.save_gallery_item(
            GalleryItem(
                id=f"{character.id}_headshot_{now}",
                image=character.anchor_headshot,
                prompt=self.headshot_prompt,
                type="character-headshot",
                timestamp=now,
                character_id=character.id,
            )
        )
        store.save_gallery_item(
            GalleryItem(
                id=f"{character.id}_body_{now}",
                image=character.anchor_body,
                prompt=self.body_prompt,
                type="character-body",
                timestamp=now,
                character_id=character.id,
            )
        )
        self.character_id = character.id
        self.created_at = character.created_at
        self.stage = PipelineStage.saved
        logger.info("character saved: %s (%s)", character.name, character.id, extra={"stage": self.stage.value})
        return character
