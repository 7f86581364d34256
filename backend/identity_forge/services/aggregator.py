"""CometAPI aggregator adapter.

One credential fronts several vendors, each reached through a different
endpoint family:

- image-capable models (Doubao Seedream, Flux) without a reference image use
  the OpenAI-style ``/v1/images/generations`` endpoint;
- the same models *with* a reference image must go through
  ``/v1/chat/completions``, because the images endpoint silently ignores
  reference conditioning;
- everything else (vendor-native models such as ``gemini-3-pro-image``) is
  proxied through ``/v1beta/models/{model}:generateContent`` with the key in
  the query string.
"""
import logging
import re
from enum import Enum
from typing import Any, Callable, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from identity_forge.core.config import SettingsReader
from identity_forge.core.data_uri import parse_data_uri, to_data_uri
from identity_forge.core.errors import (
    ContentPolicyError,
    NoImageURLError,
    ParseError,
    ProviderError,
    TransportError,
)
from identity_forge.models.character import CharacterAttributes
from identity_forge.models.generation import (
    AspectRatio,
    GenerationRequest,
    GenerationResult,
    Provider,
    ProviderConfig,
)
from identity_forge.services.native import compose_prompt, map_aspect_ratio, ordered_images
from identity_forge.services.prompts import attribute_constraints

logger = logging.getLogger(__name__)

# TODO: replace with the aggregator's /v1/models capability listing once it
# reports image support per model.
IMAGE_ENDPOINT_MODEL_MARKERS = ("doubao", "seedream", "flux")

# Doubao Seedream rejects outputs below ~3.6MP, so every size stays above it.
IMAGE_SIZES: dict[AspectRatio, str] = {
    AspectRatio.square: "1920x1920",
    AspectRatio.wide: "2560x1440",
    AspectRatio.tall: "1440x2560",
    AspectRatio.portrait: "1728x2160",
    AspectRatio.landscape: "2352x1568",
}

VENDOR_PROXY_IMAGE_SIZE = "4K"

CHARACTER_PROMPT_SYSTEM = (
    "You are an expert prompt engineer for Stable Diffusion and Midjourney. "
    "Task: Create a highly detailed, descriptive character prompt based on the provided visual "
    "and text inputs. Output: A single, dense paragraph. No filler. Focus on visual details."
)

_PAREN_URL_RE = re.compile(r"\((https?://[^\s)]+)\)")
_BARE_URL_RE = re.compile(r"https?://[^\s)\]\"'<>]+")


class Route(str, Enum):
    """Endpoint family chosen for a request."""

    images = "images"
    chat = "chat"
    vendor_proxy = "vendor_proxy"


def is_image_endpoint_model(model: str) -> bool:
    lower = model.lower()
    return any(marker in lower for marker in IMAGE_ENDPOINT_MODEL_MARKERS)


def select_route(model: str, has_reference: bool) -> Route:
    """Pick the endpoint from the model class first, then the reference image."""
    if not is_image_endpoint_model(model):
        return Route.vendor_proxy
    return Route.chat if has_reference else Route.images


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------


class _Loose(BaseModel):
    model_config = ConfigDict(extra="allow")


class ImageItem(_Loose):
    url: Optional[str] = None
    b64_json: Optional[str] = None


class ChatMessage(_Loose):
    content: Optional[Union[str, list[dict[str, Any]]]] = None

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "\n".join(str(block.get("text", "")) for block in self.content if isinstance(block, dict))
        return ""


class ChatChoice(_Loose):
    message: Optional[ChatMessage] = None


class ImagesResponse(_Loose):
    """``/v1/images/generations`` body."""

    data: list[ImageItem] = []


class ChatCompletionResponse(_Loose):
    """``/v1/chat/completions`` body, including the image fields some gateways add."""

    data: list[ImageItem] = []
    choices: list[ChatChoice] = []
    images: list[ImageItem] = []

    @property
    def message_text(self) -> str:
        if self.choices and self.choices[0].message is not None:
            return self.choices[0].message.text
        return ""


# Each strategy returns a URL or None; the first hit wins.
UrlStrategy = Callable[[ChatCompletionResponse], Optional[str]]


def url_from_data(response: Union[ChatCompletionResponse, ImagesResponse]) -> Optional[str]:
    if response.data and response.data[0].url:
        return response.data[0].url
    return None


def url_from_message_text(response: ChatCompletionResponse) -> Optional[str]:
    text = response.message_text
    if not text:
        return None
    match = _PAREN_URL_RE.search(text)
    if match:
        return match.group(1)
    match = _BARE_URL_RE.search(text)
    return match.group(0) if match else None


def url_from_images(response: ChatCompletionResponse) -> Optional[str]:
    if response.images and response.images[0].url:
        return response.images[0].url
    return None


CHAT_URL_STRATEGIES: tuple[UrlStrategy, ...] = (url_from_data, url_from_message_text, url_from_images)


def extract_image_url(body: dict[str, Any]) -> str:
    """Run the chat-completion URL strategies in order.

    Raises:
        NoImageURLError: No strategy found a URL.
    """
    try:
        response = ChatCompletionResponse.model_validate(body)
    except ValidationError as exc:
        raise ParseError("Unexpected chat completion response shape") from exc
    for strategy in CHAT_URL_STRATEGIES:
        url = strategy(response)
        if url:
            return url
    raise NoImageURLError()


def _envelope_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return None


def _vendor_parts(request: GenerationRequest) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for image in ordered_images(request):
        data_uri = parse_data_uri(image)
        parts.append({"inlineData": {"mimeType": data_uri.mime_type, "data": data_uri.payload}})
    parts.append({"text": compose_prompt(request)})
    return parts


def _image_url_block(image: str) -> dict[str, Any]:
    data_uri = parse_data_uri(image)
    return {"type": "image_url", "image_url": {"url": f"data:{data_uri.mime_type};base64,{data_uri.payload}"}}


class AggregatorAdapter:
    """CometAPI adapter. Implements generation and character prompt-text synthesis.

    Args:
        settings: Read-only settings collaborator, consulted on every call.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    provider = Provider.comet

    def __init__(
        self,
        settings: SettingsReader,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    def _client(self, config: ProviderConfig) -> httpx.AsyncClient:
        # No local timeout: generation latency is left to the transport.
        return httpx.AsyncClient(
            base_url=config.base_url or "https://api.cometapi.com",
            transport=self._transport,
            timeout=None,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate an image through whichever endpoint the model class requires."""
        config = self.settings.provider_config(Provider.comet, request.model)
        route = select_route(config.model, request.has_reference)
        logger.info(
            "generate: model=%s route=%s ratio=%s",
            config.model,
            route.value,
            request.aspect_ratio.value,
            extra={"provider": self.provider.value, "model": config.model},
        )
        async with self._client(config) as client:
            if route is Route.images:
                return await self._generate_via_images(client, config, request)
            if route is Route.chat:
                return await self._generate_via_chat(client, config, request)
            return await self._generate_via_vendor_proxy(client, config, request)

    async def _generate_via_images(
        self, client: httpx.AsyncClient, config: ProviderConfig, request: GenerationRequest
    ) -> GenerationResult:
        payload = {
            "model": config.model,
            "prompt": compose_prompt(request),
            "n": 1,
            "size": IMAGE_SIZES.get(request.aspect_ratio, IMAGE_SIZES[AspectRatio.square]),
            "response_format": "url",
        }
        body = await self._post(client, config, "/v1/images/generations", payload, bearer=True)
        try:
            response = ImagesResponse.model_validate(body)
        except ValidationError as exc:
            raise ParseError("Unexpected image generation response shape") from exc
        url = url_from_data(response)
        if url:
            return GenerationResult(image=await self._download(client, url))
        if response.data and response.data[0].b64_json:
            return GenerationResult(image=f"data:image/png;base64,{response.data[0].b64_json}")
        raise ParseError("No image data found in response")

    async def _generate_via_chat(
        self, client: httpx.AsyncClient, config: ProviderConfig, request: GenerationRequest
    ) -> GenerationResult:
        content: list[dict[str, Any]] = [{"type": "text", "text": compose_prompt(request)}]
        content.extend(_image_url_block(image) for image in ordered_images(request))
        payload = {"model": config.model, "messages": [{"role": "user", "content": content}]}
        body = await self._post(client, config, "/v1/chat/completions", payload, bearer=True)
        url = extract_image_url(body)
        note = ChatCompletionResponse.model_validate(body).message_text or None
        return GenerationResult(image=await self._download(client, url), text=note)

    async def _generate_via_vendor_proxy(
        self, client: httpx.AsyncClient, config: ProviderConfig, request: GenerationRequest
    ) -> GenerationResult:
        payload = {
            "contents": [{"role": "user", "parts": _vendor_parts(request)}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {
                    "aspectRatio": map_aspect_ratio(request.aspect_ratio),
                    "imageSize": VENDOR_PROXY_IMAGE_SIZE,
                },
            },
        }
        body = await self._post(
            client,
            config,
            f"/v1beta/models/{config.model}:generateContent",
            payload,
            params={"key": config.api_key},
        )
        return await self._parse_vendor_response(client, body)

    async def _parse_vendor_response(self, client: httpx.AsyncClient, body: dict[str, Any]) -> GenerationResult:
        """Walk ``candidates[0].content.parts`` by hand; the proxy returns raw JSON."""
        feedback = body.get("promptFeedback") or {}
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            raise ContentPolicyError(f"Prompt blocked by safety filters ({feedback['blockReason']})")

        candidates = body.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            raise ParseError("No candidates returned")
        content = candidates[0].get("content") or {}
        parts = (content.get("parts") or []) if isinstance(content, dict) else []

        image: Optional[str] = None
        texts: list[str] = []
        for part in parts:
            if not isinstance(part, dict):
                continue
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                image = f"data:{mime};base64,{inline['data']}"
            elif part.get("text"):
                texts.append(str(part["text"]))

        if image is not None:
            return GenerationResult(image=image, text="\n".join(texts) or None)
        if texts:
            match = _BARE_URL_RE.search(texts[0])
            if match:
                return GenerationResult(image=await self._download(client, match.group(0)), text=texts[0])
            raise ParseError(f"Model returned text but no image data: {texts[0][:100]}...")

        finish_reason = candidates[0].get("finishReason")
        if finish_reason in ("SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT"):
            raise ContentPolicyError(f"Generation blocked by safety filters ({finish_reason})")
        raise ParseError("No image data found in response")

    async def synthesize_character_prompt_text(
        self,
        headshot: Optional[str],
        body: Optional[str],
        attributes: CharacterAttributes,
    ) -> str:
        """Write a character prompt with the fixed analysis model over chat completions."""
        config = self.settings.provider_config(Provider.comet, self.settings.analysis_model())
        content: list[dict[str, Any]] = [
            {
                "type": "text",
                "text": "Create a character prompt.\n"
                + attribute_constraints(attributes, heading="PHYSICAL ATTRIBUTES (Must be respected):"),
            }
        ]
        if headshot:
            content.append(_image_url_block(headshot))
            content.append({"type": "text", "text": "(Image 1: Face Reference)"})
        if body:
            content.append(_image_url_block(body))
            content.append({"type": "text", "text": f"(Image {2 if headshot else 1}: Body/Style Reference)"})
        payload = {
            "model": config.model,
            "messages": [
                {"role": "system", "content": CHARACTER_PROMPT_SYSTEM},
                {"role": "user", "content": content},
            ],
            "max_tokens": 1000,
        }
        async with self._client(config) as client:
            response_body = await self._post(client, config, "/v1/chat/completions", payload, bearer=True)
        text = ChatCompletionResponse.model_validate(response_body).message_text.strip()
        if not text:
            raise ParseError("No prompt returned by the model")
        return text

    async def _post(
        self,
        client: httpx.AsyncClient,
        config: ProviderConfig,
        path: str,
        payload: dict[str, Any],
        bearer: bool = False,
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {config.api_key}"
        try:
            response = await client.post(path, json=payload, headers=headers, params=params)
        except httpx.HTTPError as exc:
            logger.error(
                "CometAPI transport failure on %s: %s: %s",
                path,
                type(exc).__name__,
                exc,
                extra={"provider": self.provider.value, "model": config.model},
            )
            raise TransportError(f"CometAPI request failed: {type(exc).__name__}: {exc}") from exc

        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = _envelope_message(body) or response.reason_phrase or f"HTTP {response.status_code}"
            logger.error(
                "CometAPI error %d on %s: %s",
                response.status_code,
                path,
                message,
                extra={"provider": self.provider.value, "model": config.model},
            )
            raise ProviderError(f"CometAPI Error ({config.model}): {message}", status_code=response.status_code)
        if not isinstance(body, dict):
            raise ParseError("CometAPI returned a non-JSON response")
        return body

    async def _download(self, client: httpx.AsyncClient, url: str) -> str:
        """Fetch a result URL and return it as a data URI."""
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise TransportError(f"Downloading generated image failed: {type(exc).__name__}: {exc}") from exc
        if response.is_error:
            raise ProviderError(
                f"Downloading generated image failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        mime = response.headers.get("content-type", "image/png").split(";")[0].strip() or "image/png"
        return to_data_uri(response.content, mime)
