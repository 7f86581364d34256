"""Tests for the in-memory character store."""
from identity_forge.models.character import CharacterBlueprint, CharacterDNA, GalleryItem
from identity_forge.services.store import InMemoryCharacterStore

BLUEPRINT = CharacterBlueprint.model_validate(
    {
        "identity": {
            "ageRange": "40s",
            "gender": "Male",
            "ethnicity": "Ghanaian",
            "skinComplexion": "Dark",
            "eyeDetails": "Brown eyes",
            "hairDetails": "Shaved head",
        },
        "style": {"bodySomatotype": "Stocky"},
    }
)


def _item(item_id: str) -> GalleryItem:
    return GalleryItem(id=item_id, image="data:image/png;base64,AAAA", prompt="p", type="generation", timestamp=1)


def test_gallery_is_newest_first() -> None:
    store = InMemoryCharacterStore()
    store.save_gallery_item(_item("first"))
    store.save_gallery_item(_item("second"))
    assert [item.id for item in store.gallery] == ["second", "first"]


def test_save_character_replaces_by_id() -> None:
    store = InMemoryCharacterStore()
    original = CharacterDNA(
        id="c1", name="Kofi", created_at=1, anchor_headshot="h", anchor_body="b", blueprint=BLUEPRINT
    )
    store.save_character(original)
    store.save_character(original.model_copy(update={"name": "Kofi A."}))

    assert len(store.characters) == 1
    assert store.get_character("c1").name == "Kofi A."
    assert store.get_character("missing") is None
