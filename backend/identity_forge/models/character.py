"""Character identity data models."""
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CharacterIdentity(_CamelModel):
    """Facial identity. Treated as fixed once extracted from the photo."""

    age_range: str = Field(..., alias="ageRange")
    gender: str
    ethnicity: str
    skin_complexion: str = Field(..., alias="skinComplexion")
    eye_details: str = Field(..., alias="eyeDetails")
    hair_details: str = Field(..., alias="hairDetails")
    distinctive_features: list[str] = Field(default_factory=list, alias="distinctiveFeatures")


class CharacterStyle(_CamelModel):
    """Body and wardrobe traits the user may change freely."""

    body_somatotype: str = Field(..., alias="bodySomatotype")
    clothing_style: list[str] = Field(default_factory=list, alias="clothingStyle")
    default_accessories: list[str] = Field(default_factory=list, alias="defaultAccessories")


class CharacterBlueprint(_CamelModel):
    """Structured identity/style profile extracted from a reference photo."""

    identity: CharacterIdentity
    style: CharacterStyle


class CharacterAttributes(_CamelModel):
    """Loose, user-entered physical attributes.

    Used as constraints for character prompt-text synthesis and as manual
    overrides on top of an extracted blueprint.
    """

    gender: Optional[str] = None
    age: Optional[str] = None
    ethnicity: Optional[str] = None
    body_type: Optional[str] = Field(None, alias="bodyType")
    height: Optional[str] = None
    complexion: Optional[str] = None
    features: Optional[str] = None


class CharacterDNA(_CamelModel):
    """A finished character: blueprint plus its two identity anchors.

    ``anchor_body`` is only meaningful when it was generated from the stored
    ``anchor_headshot``. Nothing here detects a mismatch.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = Field(..., min_length=1, max_length=50)
    created_at: int = Field(..., alias="createdAt")
    anchor_headshot: str = Field(..., alias="anchorHeadshot")
    anchor_body: str = Field(..., alias="anchorBody")
    blueprint: CharacterBlueprint


GalleryItemType = Literal[
    "generation",
    "editing",
    "image-to-prompt",
    "character-prompt",
    "character-headshot",
    "character-body",
    "faceswap",
]


class GalleryItem(_CamelModel):
    """A generated artifact handed to the gallery store."""

    id: str
    image: str = Field(..., alias="imageUrl")
    prompt: str
    type: GalleryItemType
    timestamp: int
    character_id: Optional[Union[str, int]] = Field(None, alias="influencerId")
