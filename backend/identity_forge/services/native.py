"""Native multimodal adapter backed by the Gemini API (google-genai SDK)."""
import logging
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from identity_forge.core.config import SettingsReader
from identity_forge.core.data_uri import parse_data_uri, to_data_uri
from identity_forge.core.errors import (
    ContentPolicyError,
    ParseError,
    ProviderError,
    TransportError,
)
from identity_forge.models.character import CharacterAttributes, CharacterBlueprint
from identity_forge.models.generation import (
    ArtStyle,
    AspectRatio,
    GenerationRequest,
    GenerationResult,
    Provider,
    ProviderConfig,
    TaskKind,
)
from identity_forge.services.blueprint import BLUEPRINT_ANALYSIS_PROMPT, parse_blueprint
from identity_forge.services.prompts import character_prompt_instructions

logger = logging.getLogger(__name__)

# Gemini only accepts these ratio strings; 4:5 and 3:2 are approximated and
# compensated with a composition hint in the prompt.
API_ASPECT_RATIOS: dict[AspectRatio, str] = {
    AspectRatio.square: "1:1",
    AspectRatio.wide: "16:9",
    AspectRatio.tall: "9:16",
    AspectRatio.portrait: "3:4",
    AspectRatio.landscape: "4:3",
}

APPROXIMATED_RATIO_HINTS: dict[AspectRatio, str] = {
    AspectRatio.portrait: " (Aspect Ratio 4:5 composition)",
    AspectRatio.landscape: " (Aspect Ratio 3:2 composition)",
}

DESCRIBE_IMAGE_PROMPT = (
    "Describe this image in extreme detail as a stable diffusion prompt. Focus on the "
    "subject's appearance, clothing, lighting, background, art style, camera angle, and "
    "color palette. Output ONLY the prompt text, no conversational filler."
)

_BLOCKING_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


def map_aspect_ratio(ratio: AspectRatio) -> str:
    """Return the Gemini ratio string for ``ratio`` (always one of five values)."""
    return API_ASPECT_RATIOS.get(ratio, "1:1")


def ordered_images(request: GenerationRequest) -> list[str]:
    """Images in wire order: character reference first, then the scene image.

    Prompt text refers to images by their 1-based position in this list.
    """
    images: list[str] = []
    if request.character_reference:
        images.append(request.character_reference)
    if request.scene_image:
        images.append(request.scene_image)
    return images


def compose_prompt(request: GenerationRequest) -> str:
    """Build the final text part: image-role prefix, prompt, style, ratio hint."""
    prefix = ""
    if request.character_reference:
        prefix += (
            "Image 1 is the CHARACTER VISUAL ANCHOR (Face/Identity Source). "
            "Maintain this exact identity. "
        )
    if request.scene_image:
        index = 2 if request.character_reference else 1
        if request.task is TaskKind.edit:
            prefix += f"Image {index} is the image to EDIT. Instruction: "
        elif request.character_reference:
            prefix += (
                f"Image {index} is the POSE/COMPOSITION TARGET. Transfer the character "
                f"from Image 1 into the scene/pose of Image {index}. "
            )
        else:
            prefix += f"Use Image {index} as a visual reference for composition and structure. "

    prompt = prefix + request.prompt
    if request.style is not ArtStyle.no_style:
        prompt = f"{prompt} style: {request.style.value}."
    return prompt + APPROXIMATED_RATIO_HINTS.get(request.aspect_ratio, "")


def _image_part(image: str) -> types.Part:
    data_uri = parse_data_uri(image)
    return types.Part(inline_data=types.Blob(data=data_uri.to_bytes(), mime_type=data_uri.mime_type))


def build_parts(request: GenerationRequest) -> list[types.Part]:
    """Ordered content parts: [character reference?, scene image?, text]."""
    parts = [_image_part(image) for image in ordered_images(request)]
    parts.append(types.Part(text=compose_prompt(request)))
    return parts


def _check_blocked(response: types.GenerateContentResponse) -> None:
    feedback = response.prompt_feedback
    if feedback is not None and feedback.block_reason is not None:
        reason = getattr(feedback.block_reason, "value", feedback.block_reason)
        raise ContentPolicyError(f"Prompt blocked by safety filters ({reason})")
    for candidate in response.candidates or []:
        reason = getattr(candidate.finish_reason, "value", candidate.finish_reason)
        if reason in _BLOCKING_FINISH_REASONS and not (candidate.content and candidate.content.parts):
            raise ContentPolicyError(f"Generation blocked by safety filters ({reason})")


def parse_response(response: types.GenerateContentResponse) -> GenerationResult:
    """Extract image and/or advisory text from the first candidate.

    Raises:
        ContentPolicyError: The provider blocked the prompt or the output.
        ParseError: The response carried neither image data nor text.
    """
    _check_blocked(response)
    image: Optional[str] = None
    text: Optional[str] = None
    candidates = response.candidates or []
    content = candidates[0].content if candidates else None
    for part in (content.parts if content and content.parts else []):
        if part.inline_data is not None and part.inline_data.data:
            image = to_data_uri(bytes(part.inline_data.data), part.inline_data.mime_type or "image/png")
        elif part.text:
            text = part.text
    if image is None and text is None:
        raise ParseError("No image data found in response")
    return GenerationResult(image=image, text=text)


def first_text(response: types.GenerateContentResponse) -> Optional[str]:
    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
        return None
    for part in candidates[0].content.parts or []:
        if part.text:
            return part.text
    return None


class NativeAdapter:
    """Gemini adapter for image generation/editing and vision analysis.

    Credentials are resolved from the injected SettingsReader on every call and a
    short-lived client is created per request.
    """

    provider = Provider.google

    def __init__(self, settings: SettingsReader) -> None:
        self.settings = settings

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate or edit an image.

        Args:
            request: Provider-agnostic generation request.

        Returns:
            GenerationResult with a data URI image and/or advisory text.

        Raises:
            ConfigurationError: Gemini API key not configured.
            ProviderError / TransportError: The API call failed.
            ParseError: The response contained nothing usable.
        """
        config = self.settings.provider_config(Provider.google, request.model)
        parts = build_parts(request)
        api_ratio = map_aspect_ratio(request.aspect_ratio)
        logger.info(
            "generate: model=%s task=%s ratio=%s images=%d",
            config.model,
            request.task.value,
            api_ratio,
            len(parts) - 1,
            extra={"provider": self.provider.value, "model": config.model},
        )
        response = await self._call_api(
            config,
            parts,
            types.GenerateContentConfig(image_config=types.ImageConfig(aspect_ratio=api_ratio)),
        )
        result = parse_response(response)
        if result.image is None:
            logger.warning("generate returned text only: %.200s", result.text)
        return result

    async def analyze_image(self, photo: str) -> CharacterBlueprint:
        """Extract a CharacterBlueprint from a reference photo."""
        config = self.settings.provider_config(Provider.google, self.settings.text_model())
        response = await self._call_api(config, [_image_part(photo), types.Part(text=BLUEPRINT_ANALYSIS_PROMPT)])
        text = first_text(response)
        if not text:
            raise ParseError("No response from analysis model")
        return parse_blueprint(text)

    async def describe_image(self, photo: str) -> str:
        """Describe an image as a text-to-image prompt."""
        config = self.settings.provider_config(Provider.google, self.settings.text_model())
        response = await self._call_api(config, [_image_part(photo), types.Part(text=DESCRIBE_IMAGE_PROMPT)])
        text = first_text(response)
        if not text:
            raise ParseError("No description returned by the model")
        return text.strip()

    async def synthesize_character_prompt_text(
        self,
        headshot: Optional[str],
        body: Optional[str],
        attributes: CharacterAttributes,
    ) -> str:
        """Write a dense character description prompt from images and attributes."""
        config = self.settings.provider_config(Provider.google, self.settings.text_model())
        parts = [_image_part(image) for image in (headshot, body) if image]
        parts.append(
            types.Part(
                text=character_prompt_instructions(attributes, has_headshot=bool(headshot), has_body=bool(body))
            )
        )
        response = await self._call_api(config, parts)
        text = first_text(response)
        if not text:
            raise ParseError("No prompt returned by the model")
        return text.strip()

    async def _call_api(
        self,
        config: ProviderConfig,
        parts: list[types.Part],
        generation_config: Optional[types.GenerateContentConfig] = None,
    ) -> types.GenerateContentResponse:
        """Send one generate_content call and map SDK failures to the error taxonomy."""
        client = genai.Client(api_key=config.api_key)
        try:
            return await client.aio.models.generate_content(
                model=config.model,
                contents=types.Content(role="user", parts=parts),
                config=generation_config,
            )
        except genai_errors.APIError as exc:
            message = exc.message or exc.status or f"HTTP {exc.code}"
            logger.error(
                "Gemini API error %s: %s",
                exc.code,
                message,
                extra={"provider": self.provider.value, "model": config.model},
            )
            raise ProviderError(f"Gemini API error ({exc.code}): {message}", status_code=exc.code) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "Gemini transport failure: %s: %s",
                type(exc).__name__,
                exc,
                extra={"provider": self.provider.value, "model": config.model},
            )
            raise TransportError(f"Gemini request failed: {type(exc).__name__}: {exc}") from exc
