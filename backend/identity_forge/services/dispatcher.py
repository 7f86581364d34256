"""Provider dispatcher: routes calls to the native or aggregator adapter."""
import logging
from typing import Optional, Union

from identity_forge.core.config import SettingsReader
from identity_forge.core.errors import classify_error
from identity_forge.models.character import CharacterAttributes, CharacterBlueprint
from identity_forge.models.generation import GenerationRequest, GenerationResult, Provider
from identity_forge.services.aggregator import AggregatorAdapter
from identity_forge.services.native import NativeAdapter

logger = logging.getLogger(__name__)

# Returned instead of raising when the selected provider has no implementation
# for an optional text operation. Never a successful result.
UNSUPPORTED_RESULT = "This operation is not supported by the selected provider."


def is_unsupported(text: str) -> bool:
    return text == UNSUPPORTED_RESULT


class ProviderDispatcher:
    """Single entry point used by the pipeline and the HTTP layer.

    Responsibilities:
    1. Pick the adapter per call: explicit ``request.provider`` or the stored default
    2. Always send photo analysis to the native adapter's vision path
    3. Return ``UNSUPPORTED_RESULT`` for optional operations an adapter lacks
    4. Normalize failures into the error taxonomy (content-policy remapping)
    """

    def __init__(
        self,
        settings: SettingsReader,
        native: Optional[NativeAdapter] = None,
        aggregator: Optional[AggregatorAdapter] = None,
    ) -> None:
        self.settings = settings
        self.native = native or NativeAdapter(settings)
        self.aggregator = aggregator or AggregatorAdapter(settings)

    def adapter_for(self, provider: Optional[Provider] = None) -> Union[NativeAdapter, AggregatorAdapter]:
        selected = provider or self.settings.default_provider()
        if selected is Provider.comet:
            return self.aggregator
        return self.native

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Forward ``request`` unchanged to the selected adapter."""
        adapter = self.adapter_for(request.provider)
        try:
            return await adapter.generate(request)
        except Exception as exc:
            self._reraise(exc, "generate", adapter.provider)
            raise

    async def analyze_image(self, photo: str) -> CharacterBlueprint:
        """Extract a blueprint. Always native, whatever the default provider is."""
        try:
            return await self.native.analyze_image(photo)
        except Exception as exc:
            self._reraise(exc, "analyze_image", Provider.google)
            raise

    async def describe_image(self, photo: str, provider: Optional[Provider] = None) -> str:
        adapter = self.adapter_for(provider)
        describe = getattr(adapter, "describe_image", None)
        if describe is None:
            logger.info("describe_image unsupported by %s", adapter.provider.value)
            return UNSUPPORTED_RESULT
        try:
            return await describe(photo)
        except Exception as exc:
            self._reraise(exc, "describe_image", adapter.provider)
            raise

    async def synthesize_character_prompt_text(
        self,
        headshot: Optional[str],
        body: Optional[str],
        attributes: CharacterAttributes,
        provider: Optional[Provider] = None,
    ) -> str:
        adapter = self.adapter_for(provider)
        synthesize = getattr(adapter, "synthesize_character_prompt_text", None)
        if synthesize is None:
            logger.info("synthesize_character_prompt_text unsupported by %s", adapter.provider.value)
            return UNSUPPORTED_RESULT
        try:
            return await synthesize(headshot, body, attributes)
        except Exception as exc:
            self._reraise(exc, "synthesize_character_prompt_text", adapter.provider)
            raise

    def _reraise(self, exc: Exception, operation: str, provider: Provider) -> None:
        """Raise the taxonomy error for ``exc`` if it differs from ``exc`` itself.

        Exceptions from outside the taxonomy (SDK response errors, stray
        ``ValueError``) are always replaced.
        """
        mapped = classify_error(exc)
        logger.error(
            "%s failed: %s: %s",
            operation,
            type(mapped).__name__,
            mapped.message,
            extra={"provider": provider.value, "operation": operation},
        )
        if mapped is not exc:
            raise mapped from exc
