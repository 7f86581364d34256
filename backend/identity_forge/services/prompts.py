"""Prompt synthesis from a character blueprint.

Everything here is a pure function of its arguments: the same blueprint always
yields byte-identical prompts, which is what lets edit-mode re-entry rebuild
the prompts from a stored character.
"""
from typing import Optional

from identity_forge.models.character import CharacterAttributes, CharacterBlueprint, CharacterDNA
from identity_forge.models.generation import (
    ArtStyle,
    AspectRatio,
    GenerationRequest,
    Provider,
)

BODY_TYPE_DESCRIPTIONS: dict[str, str] = {
    "Ectomorph": "slender, elegant frame",
    "Mesomorph": "athletic, muscular build",
    "Endomorph": "soft, curvy physique",
    "Athletic": "toned, athletic build",
    "Curvy": "voluptuous, curvy figure",
    "Slender": "thin, delicate frame",
    "Stocky": "broad, sturdy build",
}


def _joined(values: list[str], empty: str = "none") -> str:
    return ", ".join(values) if values else empty


def headshot_prompt(blueprint: CharacterBlueprint) -> str:
    """Passport-style 1:1 headshot prompt."""
    identity = blueprint.identity
    return f"""Professional passport-style headshot photograph, 1:1 square format:

SUBJECT IDENTITY:
- {identity.gender}, {identity.age_range}
- Ethnicity: {identity.ethnicity}
- Skin: {identity.skin_complexion}
- Eyes: {identity.eye_details}
- Hair: {identity.hair_details}
- Distinctive features: {_joined(identity.distinctive_features)}

STYLE CONSTRAINTS:
- Neutral, pleasant expression (slight natural smile)
- Direct eye contact with camera
- Head and shoulders only (crop at collarbone)
- Centered composition

LIGHTING & BACKGROUND:
- Soft, even studio lighting (no harsh shadows)
- Plain white or light gray background
- Professional photography studio quality
- Photorealistic, sharp focus"""


def full_body_prompt(blueprint: CharacterBlueprint) -> str:
    """Neutral 9:16 full-body lookbook prompt on a plain background."""
    identity, style = blueprint.identity, blueprint.style
    return f"""Full-body neutral lookbook photograph, 9:16 tall format:

BODY COMPOSITION:
- Subject: {identity.gender}, {identity.age_range}
- Body type: {style.body_somatotype}
- Standing naturally with arms relaxed at sides
- Full body visible from head to feet
- Centered composition

CLOTHING & ACCESSORIES:
- Style: {_joined(style.clothing_style, "casual")} aesthetic
- Accessories: {_joined(style.default_accessories)}
- Neutral, timeless outfit

BACKGROUND:
- PLAIN WHITE or LIGHT GRAY BACKGROUND
- No scenes, no curtains, no props, no context
- Professional lookbook/catalog aesthetic
- Clean, minimal, reusable asset

LIGHTING & QUALITY:
- Even studio lighting, soft shadows
- Neutral expression
- Photorealistic, sharp focus
- Professional fashion photography quality"""


def anchor_body_prompt(headshot_prompt_text: str, body_prompt_text: str) -> str:
    """Body prompt preceded by the headshot prompt as an identity block.

    Image 1 of the body request is always the headshot anchor.
    """
    return f"""FACIAL CONSISTENCY INSTRUCTION:
Image 1 is the CHARACTER VISUAL ANCHOR (headshot reference).
Maintain this EXACT facial identity as described below:

{headshot_prompt_text}

---

FULL BODY GENERATION:
{body_prompt_text}"""


def subject_description(blueprint: CharacterBlueprint) -> str:
    identity, style = blueprint.identity, blueprint.style
    body = BODY_TYPE_DESCRIPTIONS.get(style.body_somatotype, style.body_somatotype)
    return (
        f"A photorealistic shot of a {identity.age_range} {identity.gender}, "
        f"{identity.ethnicity}, with a {body}. "
        f"Distinctive features: {_joined(identity.distinctive_features)}."
    )


def scene_request(
    character: CharacterDNA,
    scene_prompt: str,
    aspect_ratio: AspectRatio = AspectRatio.square,
    style: ArtStyle = ArtStyle.no_style,
    scene_image: Optional[str] = None,
    provider: Optional[Provider] = None,
    model: Optional[str] = None,
) -> GenerationRequest:
    """Build a later generation that references the character's headshot anchor."""
    blueprint = character.blueprint
    wardrobe = f"Wearing {_joined(blueprint.style.clothing_style, 'casual clothing')}."
    text = (
        f"{subject_description(blueprint)} {wardrobe} {scene_prompt}. "
        "Cinematic lighting, 8k resolution, highly detailed based on the reference identity."
    )
    return GenerationRequest(
        prompt=text,
        style=style,
        aspect_ratio=aspect_ratio,
        scene_image=scene_image,
        character_reference=character.anchor_headshot,
        provider=provider,
        model=model,
    )


def character_profile(character: CharacterDNA) -> str:
    identity, style = character.blueprint.identity, character.blueprint.style
    attrs = [
        f"Gender: {identity.gender}",
        f"Age: {identity.age_range}",
        f"Ethnicity: {identity.ethnicity}",
        f"Body: {style.body_somatotype}",
        f"Complexion: {identity.skin_complexion}",
    ]
    if identity.distinctive_features:
        attrs.append(f"Features: {', '.join(identity.distinctive_features)}")
    return f"Character Name: {character.name}. Physical Attributes: [{', '.join(attrs)}]."


def character_sheet_request(
    character: CharacterDNA,
    outfit: str = "",
    style: ArtStyle = ArtStyle.photorealistic,
    provider: Optional[Provider] = None,
    model: Optional[str] = None,
) -> GenerationRequest:
    """Build a 16:9 twelve-pose model sheet anchored on the headshot."""
    text = f"""Create a professional detailed CHARACTER REFERENCE SHEET (Model Sheet) for the following character.

CHARACTER DETAILS:
{character_profile(character)}

OUTFIT / SETTING:
{outfit.strip() or 'Casual everyday clothing suitable for the character.'}

LAYOUT REQUIREMENTS:
- Generate exactly 12 distinct poses arranged in a grid layout (e.g., 4x3 or 6x2).
- Include a mix of: Front view, Side view, Back view, 3/4 view, Action poses, Sitting poses, and Close-up facial expressions.
- BACKGROUND: Solid neutral white or light grey background (Clean Studio Lighting).
- STYLE: {style.value}. High resolution, consistent proportions, consistent clothing across all poses.
- The image should look like a cohesive production asset for animation or game design."""
    return GenerationRequest(
        prompt=text,
        style=style,
        aspect_ratio=AspectRatio.wide,
        character_reference=character.anchor_headshot,
        reference_strength="high",
        provider=provider,
        model=model,
    )


def character_insertion_request(
    character: CharacterDNA,
    scene_image: str,
    provider: Optional[Provider] = None,
    model: Optional[str] = None,
) -> GenerationRequest:
    """Recreate ``scene_image`` with the character in place of its subject.

    Image 1 is the headshot anchor, image 2 the scene whose pose, lighting and
    composition are kept.
    """
    identity = character.blueprint.identity
    physical = ", ".join(
        [identity.gender, identity.ethnicity, identity.age_range, f"{identity.skin_complexion} skin"]
    )
    text = (
        f"Character Insertion. Recreate this image featuring the character {character.name} ({physical}). "
        "Maintain the original pose, lighting, composition, and background of the reference image exactly "
        "as is. Ensure high photorealism and seamless blending."
    )
    return GenerationRequest(
        prompt=text,
        style=ArtStyle.photorealistic,
        aspect_ratio=AspectRatio.square,
        scene_image=scene_image,
        character_reference=character.anchor_headshot,
        provider=provider,
        model=model,
    )


def attribute_constraints(attributes: CharacterAttributes, heading: str = "PHYSICAL ATTRIBUTES (Must be included):") -> str:
    """Bullet list of the attributes that are set, under ``heading``."""
    lines = [heading]
    labelled = [
        ("Gender", attributes.gender),
        ("Age", attributes.age),
        ("Ethnicity", attributes.ethnicity),
        ("Body Type", attributes.body_type),
        ("Height", attributes.height),
        ("Complexion", attributes.complexion),
    ]
    lines.extend(f"- {label}: {value}" for label, value in labelled if value)
    if attributes.features and attributes.features != "None":
        lines.append(f"- Distinguishing Features: {attributes.features}")
    return "\n".join(lines)


def character_prompt_instructions(
    attributes: CharacterAttributes,
    has_headshot: bool,
    has_body: bool,
) -> str:
    """Instruction text for turning reference images plus attributes into a prompt."""
    inputs = []
    if has_headshot:
        inputs.append("- Image 1: Headshot Reference")
    if has_body:
        inputs.append(f"- Image {2 if has_headshot else 1}: Body/Outfit Reference")
    inputs.append(attribute_constraints(attributes))
    joined_inputs = "\n".join(inputs)
    return f"""You are an expert prompt engineer for AI Image Generators.

TASK:
Create a highly detailed, structured character description prompt based on the inputs provided.

INPUTS:
{joined_inputs}

INSTRUCTIONS:
1. Analyze the provided images (if any) to extract specific facial structures, hair style, eye color, fashion style, and vibe.
2. Combine visual findings with the text 'PHYSICAL ATTRIBUTES' listed above. The text attributes take precedence if there is a conflict.
3. Output a single, dense paragraph suitable for Stable Diffusion or Midjourney.
4. Focus on: Facial features, Skin texture, Hair details, Body proportions, Clothing style, and general Vibe/Aura.
5. Do NOT include conversational filler like "Here is the prompt". Just output the prompt text."""
