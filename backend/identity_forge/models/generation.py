"""Generation request/result data models."""
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from identity_forge.core.data_uri import parse_data_uri


class ArtStyle(str, Enum):
    """Style tags appended to generation prompts."""

    no_style = "No Style (Raw)"
    photorealistic = "Photorealistic"
    anime_manga = "Anime / Manga"
    cinematic = "Cinematic"
    surrealism = "Surrealism"
    watercolor = "Watercolor"
    moebius = "Moebius Style"
    hyper_realistic = "Hyper-realistic"
    cyberpunk = "Cyberpunk"
    oil_painting = "Oil Painting"
    three_d_render = "3D Render"
    pencil_sketch = "Pencil Sketch"
    pixel_art = "Pixel Art"


class AspectRatio(str, Enum):
    """Aspect ratios offered to callers. Not every backend supports all of them."""

    square = "1:1"
    wide = "16:9"
    tall = "9:16"
    portrait = "4:5"
    landscape = "3:2"


class TaskKind(str, Enum):
    generate = "generate"
    edit = "edit"


class Provider(str, Enum):
    """Generation backends."""

    google = "google"
    comet = "comet"


class ProviderConfig(BaseModel):
    """Credentials and model for one provider, resolved fresh for every call."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    model: str
    api_key: str = ""
    base_url: Optional[str] = None


class GenerationRequest(BaseModel):
    """One image generation or edit call, provider-agnostic."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=1)
    style: ArtStyle = ArtStyle.no_style
    aspect_ratio: AspectRatio = Field(AspectRatio.square, alias="aspectRatio")
    scene_image: Optional[str] = Field(None, alias="sceneImage")
    character_reference: Optional[str] = Field(None, alias="characterReference")
    task: TaskKind = TaskKind.generate
    provider: Optional[Provider] = None
    model: Optional[str] = None
    reference_strength: Optional[Literal["low", "medium", "high"]] = Field(
        None, alias="referenceStrength"
    )

    @field_validator("scene_image", "character_reference")
    @classmethod
    def _valid_data_uri(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_data_uri(value)
        return value

    @model_validator(mode="after")
    def _edit_needs_scene(self) -> "GenerationRequest":
        if self.task is TaskKind.edit and not self.scene_image:
            raise ValueError("An edit task requires a scene image to edit")
        return self

    @property
    def has_reference(self) -> bool:
        return bool(self.scene_image or self.character_reference)


class GenerationResult(BaseModel):
    """Outcome of a generation call.

    ``image`` is always a data URI. ``text`` is an advisory note from the model;
    on its own it never means the generation succeeded.
    """

    image: Optional[str] = None
    text: Optional[str] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "GenerationResult":
        if not self.image and not self.text:
            raise ValueError("GenerationResult needs an image or text")
        return self
