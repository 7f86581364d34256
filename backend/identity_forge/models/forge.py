"""Request/response models for the forge and generation HTTP endpoints."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from identity_forge.core.data_uri import parse_data_uri
from identity_forge.models.character import CharacterAttributes, CharacterBlueprint
from identity_forge.models.generation import ArtStyle, AspectRatio, Provider


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AnchoredKind(str, Enum):
    """Generations built on a saved character's headshot anchor."""

    scene = "scene"
    sheet = "sheet"
    insertion = "insertion"


class CreateSessionRequest(_CamelModel):
    """Start a new anchor pipeline from a name and a reference photo."""

    name: str = Field(..., min_length=1, max_length=50)
    photo: str = Field(..., min_length=1, description="Reference photo as a data URI")
    provider: Optional[Provider] = Field(None, description="Generation provider; default from settings")
    model: Optional[str] = None


class PromptsUpdate(_CamelModel):
    """Manual prompt edits and/or blueprint overrides during edit_prompts."""

    headshot_prompt: Optional[str] = Field(None, alias="headshotPrompt")
    body_prompt: Optional[str] = Field(None, alias="bodyPrompt")
    attributes: Optional[CharacterAttributes] = None


class SessionState(_CamelModel):
    """Snapshot of one anchor pipeline."""

    id: str
    stage: str
    name: str
    blueprint: Optional[CharacterBlueprint] = None
    headshot_prompt: str = Field("", alias="headshotPrompt")
    body_prompt: str = Field("", alias="bodyPrompt")
    anchor_headshot: Optional[str] = Field(None, alias="anchorHeadshot")
    anchor_body: Optional[str] = Field(None, alias="anchorBody")
    can_generate_body: bool = Field(False, alias="canGenerateBody")
    character_id: Optional[str] = Field(None, alias="characterId")
    last_error: Optional[str] = Field(None, alias="lastError")


class DescribeRequest(_CamelModel):
    image: str = Field(..., min_length=1, description="Image to describe as a data URI")
    provider: Optional[Provider] = None


class DescribeResponse(_CamelModel):
    text: str
    supported: bool = True


class EditCharacterRequest(_CamelModel):
    """Provider choice for a session reopened from a stored character."""

    provider: Optional[Provider] = None
    model: Optional[str] = None


class CharacterGenerateRequest(_CamelModel):
    """A generation anchored on a stored character.

    ``prompt`` is the scene description for ``scene`` and the outfit/setting
    text for ``sheet``; ``insertion`` ignores it and needs ``sceneImage``.
    """

    kind: AnchoredKind = AnchoredKind.scene
    prompt: str = ""
    style: Optional[ArtStyle] = None
    aspect_ratio: AspectRatio = Field(AspectRatio.square, alias="aspectRatio")
    scene_image: Optional[str] = Field(None, alias="sceneImage")
    provider: Optional[Provider] = None
    model: Optional[str] = None

    @field_validator("scene_image")
    @classmethod
    def _valid_data_uri(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_data_uri(value)
        return value

    @model_validator(mode="after")
    def _inputs_for_kind(self) -> "CharacterGenerateRequest":
        if self.kind is AnchoredKind.scene and not self.prompt.strip():
            raise ValueError("A scene generation requires a prompt")
        if self.kind is AnchoredKind.insertion and not self.scene_image:
            raise ValueError("Character insertion requires a scene image")
        return self
