"""Shared test fixtures and configuration."""
import pytest


@pytest.fixture(autouse=True)
def set_required_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set provider credentials for all tests (no real calls are made)."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-key")
    monkeypatch.setenv("COMET_API_KEY", "test-comet-key")
    monkeypatch.setenv("AI_PROVIDER", "google")
