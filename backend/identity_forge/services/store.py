"""Character/gallery store collaborator.

The real persistence layer lives outside this package; the pipeline only needs
the three calls declared by :class:`CharacterStore`.
"""
from typing import Optional, Protocol

from identity_forge.models.character import CharacterDNA, GalleryItem


class CharacterStore(Protocol):
    def save_character(self, character: CharacterDNA) -> None: ...

    def save_gallery_item(self, item: GalleryItem) -> None: ...

    def get_character(self, character_id: str) -> Optional[CharacterDNA]: ...


class InMemoryCharacterStore:
    """Process-local store used by the HTTP app and tests."""

    def __init__(self) -> None:
        self.characters: dict[str, CharacterDNA] = {}
        # Newest first, like the gallery view
        self.gallery: list[GalleryItem] = []

    def save_character(self, character: CharacterDNA) -> None:
        self.characters[character.id] = character

    def save_gallery_item(self, item: GalleryItem) -> None:
        self.gallery.insert(0, item)

    def get_character(self, character_id: str) -> Optional[CharacterDNA]:
        return self.characters.get(character_id)
