"""Blueprint extraction: photo -> structured identity/style profile.

The vision call itself lives in the native adapter (see
``NativeAdapter.analyze_image``); this module owns the analysis prompt, the
JSON parsing of the model's answer and the manual override rules.
"""
import json
import re
from typing import Any

from pydantic import ValidationError

from identity_forge.core.errors import ParseError
from identity_forge.models.character import (
    CharacterAttributes,
    CharacterBlueprint,
)

BLUEPRINT_ANALYSIS_PROMPT = """
You are an expert character designer. Analyze the provided image and extract a detailed JSON profile (NO markdown code blocks).

Provide extremely detailed descriptions for:
- Age Range (e.g., "Late 20s", "Mid 40s")
- Gender
- Ethnicity (be specific, e.g., "Japanese-Brazilian", "Irish-American")
- Skin Complexion (detailed: "Olive skin with warm undertones", "Fair skin with cool pink undertones")
- Eye Details (shape, color, distinctive features: "Almond-shaped hazel eyes with golden flecks")
- Hair Details (length, texture, color: "Shoulder-length wavy dark brown hair with subtle highlights")
- Distinctive Features (at least 3: "Beauty mark above lip", "High cheekbones", "Defined jawline")
- Body Somatotype (Athletic, Curvy, Slender, etc.)
- Clothing Style visible in image (multiple tags: "Minimalist", "Streetwear", "Business Casual")
- Accessories visible (if any: "Gold hoop earrings", "Leather watch")

Output this EXACT JSON structure:
{
  "identity": {
    "ageRange": "string",
    "gender": "string",
    "ethnicity": "string",
    "skinComplexion": "string",
    "eyeDetails": "string",
    "hairDetails": "string",
    "distinctiveFeatures": ["string", "string", "string"]
  },
  "style": {
    "bodySomatotype": "string",
    "clothingStyle": ["string"],
    "defaultAccessories": ["string"]
  }
}
"""

_FENCE_RE = re.compile(r"```(?:json|JSON)?")


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers that models wrap around JSON."""
    return _FENCE_RE.sub("", text).strip()


def parse_model_json(text: str) -> Any:
    """Parse JSON emitted by a model, tolerating Markdown fences.

    Raises:
        ParseError: When the text is empty or not valid JSON. Never retried.
    """
    if not text or not text.strip():
        raise ParseError("No response from analysis model")
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Model output is not valid JSON: {exc.msg} (at char {exc.pos})") from exc


def parse_blueprint(text: str) -> CharacterBlueprint:
    """Parse the analysis model's answer into a CharacterBlueprint."""
    data = parse_model_json(text)
    try:
        return CharacterBlueprint.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Blueprint JSON has an unexpected shape: {exc.error_count()} error(s)") from exc


def map_complexion(skin_complexion: str) -> str:
    """Collapse a free-text complexion description to a picker value."""
    lower = skin_complexion.lower()
    if "fair" in lower or "light" in lower:
        return "Fair"
    if "dark" in lower:
        return "Dark"
    if "olive" in lower:
        return "Olive"
    if "tan" in lower:
        return "Tan"
    if "porcelain" in lower:
        return "Porcelain"
    if "freckled" in lower:
        return "Freckled"
    return "Medium"


def apply_overrides(blueprint: CharacterBlueprint, attributes: CharacterAttributes) -> CharacterBlueprint:
    """Return a copy of ``blueprint`` with the set manual attributes applied.

    Unset attributes keep the extracted values. The input is not mutated.
    """
    identity_updates: dict[str, Any] = {}
    if attributes.age:
        identity_updates["age_range"] = attributes.age
    if attributes.gender:
        identity_updates["gender"] = attributes.gender
    if attributes.ethnicity:
        identity_updates["ethnicity"] = attributes.ethnicity
    if attributes.complexion:
        identity_updates["skin_complexion"] = f"{attributes.complexion} complexion"
    if attributes.features and attributes.features != "None":
        identity_updates["distinctive_features"] = [attributes.features]

    style_updates: dict[str, Any] = {}
    if attributes.body_type:
        style_updates["body_somatotype"] = attributes.body_type

    return CharacterBlueprint(
        identity=blueprint.identity.model_copy(update=identity_updates),
        style=blueprint.style.model_copy(update=style_updates),
    )
