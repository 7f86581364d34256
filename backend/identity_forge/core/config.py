"""Configuration management using pydantic-settings."""
from functools import lru_cache
from typing import Optional, Protocol

from pydantic_settings import BaseSettings, SettingsConfigDict

from identity_forge.core.errors import ConfigurationError
from identity_forge.models.generation import Provider, ProviderConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Default generation provider when a request does not name one
    ai_provider: Provider = Provider.google

    # Credentials (optional at load time, checked per call)
    gemini_api_key: str = ""
    comet_api_key: str = ""

    # Native Gemini models
    gemini_image_model: str = "gemini-2.5-flash-image"
    gemini_text_model: str = "gemini-2.5-flash"

    # CometAPI aggregator
    comet_base_url: str = "https://api.cometapi.com"
    comet_image_model: str = "doubao-seedream-4-0-250828"
    comet_analysis_model: str = "grok-4-fast"

    # Application settings
    app_name: str = "identity-forge"

    # Server settings
    backend_host: str = "localhost"
    backend_port: int = 8000
    frontend_port: int = 3000


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (app wiring only, not per-call lookups)."""
    return Settings()


class SettingsReader(Protocol):
    """Read-only view of provider settings handed to the adapters."""

    def default_provider(self) -> Provider: ...

    def provider_config(self, provider: Provider, model: Optional[str] = None) -> ProviderConfig: ...

    def text_model(self) -> str: ...

    def analysis_model(self) -> str: ...


class EnvSettingsReader:
    """SettingsReader that re-reads the environment on every call.

    Credentials edited in ``.env`` or the process environment are picked up by
    the next request without restarting.
    """

    def __init__(self, **overrides: object) -> None:
        self._overrides = overrides

    def _load(self) -> Settings:
        return Settings(**self._overrides)  # type: ignore[arg-type]

    def default_provider(self) -> Provider:
        return self._load().ai_provider

    def text_model(self) -> str:
        return self._load().gemini_text_model

    def provider_config(self, provider: Provider, model: Optional[str] = None) -> ProviderConfig:
        """Resolve credentials and model for ``provider``.

        Raises:
            ConfigurationError: When the provider's API key is not set.
        """
        settings = self._load()
        if provider is Provider.comet:
            if not settings.comet_api_key:
                raise ConfigurationError("Comet API key missing. Please set COMET_API_KEY.")
            return ProviderConfig(
                provider=provider,
                model=model or settings.comet_image_model,
                api_key=settings.comet_api_key,
                base_url=settings.comet_base_url,
            )
        if not settings.gemini_api_key:
            raise ConfigurationError("Gemini API key missing. Please set GEMINI_API_KEY.")
        return ProviderConfig(
            provider=provider,
            model=model or settings.gemini_image_model,
            api_key=settings.gemini_api_key,
        )

    def analysis_model(self) -> str:
        return self._load().comet_analysis_model
