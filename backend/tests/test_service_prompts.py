"""Tests for prompt synthesis."""
from identity_forge.models.character import CharacterAttributes, CharacterBlueprint, CharacterDNA
from identity_forge.models.generation import ArtStyle, AspectRatio, Provider
from identity_forge.services.prompts import (
    anchor_body_prompt,
    attribute_constraints,
    character_insertion_request,
    character_prompt_instructions,
    character_sheet_request,
    full_body_prompt,
    headshot_prompt,
    scene_request,
    subject_description,
)

PNG_URI = "data:image/png;base64,iVBORw0KGgo="

BLUEPRINT = CharacterBlueprint.model_validate(
    {
        "identity": {
            "ageRange": "Early 30s",
            "gender": "Male",
            "ethnicity": "Korean",
            "skinComplexion": "Light warm",
            "eyeDetails": "Monolid dark brown eyes",
            "hairDetails": "Short black undercut",
            "distinctiveFeatures": ["Scar on left eyebrow"],
        },
        "style": {
            "bodySomatotype": "Mesomorph",
            "clothingStyle": ["Streetwear", "Techwear"],
            "defaultAccessories": [],
        },
    }
)


def _character() -> CharacterDNA:
    return CharacterDNA(
        id="c1",
        name="Min",
        created_at=1,
        anchor_headshot=PNG_URI,
        anchor_body="data:image/png;base64,AAAA",
        blueprint=BLUEPRINT,
    )


class TestHeadshotPrompt:
    def test_is_deterministic(self) -> None:
        assert headshot_prompt(BLUEPRINT) == headshot_prompt(BLUEPRINT.model_copy(deep=True))

    def test_contains_identity_fields(self) -> None:
        text = headshot_prompt(BLUEPRINT)
        assert text.startswith("Professional passport-style headshot photograph, 1:1 square format:")
        assert "- Male, Early 30s" in text
        assert "Eyes: Monolid dark brown eyes" in text
        assert "Distinctive features: Scar on left eyebrow" in text


class TestFullBodyPrompt:
    def test_is_deterministic(self) -> None:
        assert full_body_prompt(BLUEPRINT) == full_body_prompt(BLUEPRINT)

    def test_contains_style_fields_and_plain_background(self) -> None:
        text = full_body_prompt(BLUEPRINT)
        assert text.startswith("Full-body neutral lookbook photograph, 9:16 tall format:")
        assert "Body type: Mesomorph" in text
        assert "Style: Streetwear, Techwear aesthetic" in text
        assert "Accessories: none" in text
        assert "PLAIN WHITE or LIGHT GRAY BACKGROUND" in text


def test_anchor_body_prompt_puts_identity_block_first() -> None:
    text = anchor_body_prompt("HEADSHOT TEXT", "BODY TEXT")
    assert text.startswith("FACIAL CONSISTENCY INSTRUCTION:\nImage 1 is the CHARACTER VISUAL ANCHOR")
    assert text.index("HEADSHOT TEXT") < text.index("FULL BODY GENERATION:") < text.index("BODY TEXT")


def test_subject_description_uses_body_type_wording() -> None:
    text = subject_description(BLUEPRINT)
    assert "Early 30s Male" in text
    assert "athletic, muscular build" in text


class TestSceneRequest:
    def test_references_the_headshot_anchor(self) -> None:
        req = scene_request(_character(), "walking through a night market")
        assert req.character_reference == PNG_URI
        assert req.scene_image is None
        assert "walking through a night market" in req.prompt
        assert "Wearing Streetwear, Techwear." in req.prompt

    def test_passes_through_options(self) -> None:
        req = scene_request(
            _character(),
            "on a rooftop",
            aspect_ratio=AspectRatio.wide,
            style=ArtStyle.cinematic,
            scene_image=PNG_URI,
            provider=Provider.comet,
        )
        assert req.aspect_ratio is AspectRatio.wide
        assert req.style is ArtStyle.cinematic
        assert req.scene_image == PNG_URI
        assert req.provider is Provider.comet


class TestCharacterSheetRequest:
    def test_is_wide_and_anchored_on_headshot(self) -> None:
        req = character_sheet_request(_character(), outfit="Black tuxedo")
        assert req.aspect_ratio is AspectRatio.wide
        assert req.character_reference == PNG_URI
        assert req.reference_strength == "high"
        assert "Character Name: Min." in req.prompt
        assert "Features: Scar on left eyebrow" in req.prompt
        assert "Black tuxedo" in req.prompt
        assert "STYLE: Photorealistic." in req.prompt

    def test_blank_outfit_uses_casual_default(self) -> None:
        req = character_sheet_request(_character(), outfit="  ")
        assert "Casual everyday clothing suitable for the character." in req.prompt


def test_character_insertion_keeps_scene_as_second_image() -> None:
    scene = "data:image/jpeg;base64,/9j/4AAQ"
    req = character_insertion_request(_character(), scene, provider=Provider.comet)
    assert req.character_reference == PNG_URI
    assert req.scene_image == scene
    assert req.style is ArtStyle.photorealistic
    assert req.aspect_ratio is AspectRatio.square
    assert req.provider is Provider.comet
    assert req.prompt.startswith("Character Insertion. Recreate this image featuring the character Min (Male, Korean, Early 30s, Light warm skin).")


class TestCharacterPromptInstructions:
    def test_only_set_attributes_are_listed(self) -> None:
        text = attribute_constraints(CharacterAttributes(gender="Female", height="Tall", features="None"))
        assert "- Gender: Female" in text
        assert "- Height: Tall" in text
        assert "Ethnicity" not in text
        assert "Distinguishing Features" not in text

    def test_image_numbering_follows_supplied_images(self) -> None:
        both = character_prompt_instructions(CharacterAttributes(), has_headshot=True, has_body=True)
        assert "- Image 1: Headshot Reference" in both
        assert "- Image 2: Body/Outfit Reference" in both

        body_only = character_prompt_instructions(CharacterAttributes(), has_headshot=False, has_body=True)
        assert "- Image 1: Body/Outfit Reference" in body_only
        assert "Headshot Reference" not in body_only
