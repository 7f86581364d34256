"""Generations that reuse a saved character's headshot anchor.

Three builders share the anchor: free scenes, the twelve-pose reference sheet
and character insertion into an uploaded scene. Every successful result is
written to the gallery under the character's id.
"""
import logging
import time
from typing import Optional

from identity_forge.core.errors import ParseError
from identity_forge.models.character import CharacterDNA, GalleryItem, GalleryItemType
from identity_forge.models.forge import AnchoredKind
from identity_forge.models.generation import ArtStyle, AspectRatio, GenerationRequest, Provider
from identity_forge.services.dispatcher import ProviderDispatcher
from identity_forge.services.prompts import (
    character_insertion_request,
    character_sheet_request,
    scene_request,
)
from identity_forge.services.store import CharacterStore

logger = logging.getLogger(__name__)

GALLERY_TYPES: dict[AnchoredKind, GalleryItemType] = {
    AnchoredKind.scene: "generation",
    AnchoredKind.sheet: "generation",
    AnchoredKind.insertion: "faceswap",
}


def build_anchored_request(
    character: CharacterDNA,
    kind: AnchoredKind,
    prompt: str = "",
    style: Optional[ArtStyle] = None,
    aspect_ratio: AspectRatio = AspectRatio.square,
    scene_image: Optional[str] = None,
    provider: Optional[Provider] = None,
    model: Optional[str] = None,
) -> GenerationRequest:
    if kind is AnchoredKind.sheet:
        return character_sheet_request(
            character,
            outfit=prompt,
            style=style or ArtStyle.photorealistic,
            provider=provider,
            model=model,
        )
    if kind is AnchoredKind.insertion:
        if not scene_image:
            raise ValueError("Character insertion requires a scene image")
        return character_insertion_request(character, scene_image, provider=provider, model=model)
    return scene_request(
        character,
        prompt,
        aspect_ratio=aspect_ratio,
        style=style or ArtStyle.no_style,
        scene_image=scene_image,
        provider=provider,
        model=model,
    )


async def generate_for_character(
    dispatcher: ProviderDispatcher,
    store: CharacterStore,
    character: CharacterDNA,
    kind: AnchoredKind,
    **options,
) -> GalleryItem:
    """Run one anchored generation and record it in the gallery.

    Raises:
        ParseError: The provider answered with advisory text only.
        ForgeError: Any failure normalized by the dispatcher.
    """
    request = build_anchored_request(character, kind, **options)
    result = await dispatcher.generate(request)
    if result.image is None:
        raise ParseError(f"Model returned text but no image data: {(result.text or '')[:100]}")

    now = int(time.time() * 1000)
    item = GalleryItem(
        id=f"{character.id}_{kind.value}_{now}",
        image=result.image,
        prompt=request.prompt,
        type=GALLERY_TYPES[kind],
        timestamp=now,
        character_id=character.id,
    )
    store.save_gallery_item(item)
    logger.info(
        "%s generated for character %s",
        kind.value,
        character.id,
        extra={"operation": f"character_{kind.value}"},
    )
    return item
