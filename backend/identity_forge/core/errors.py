"""Error taxonomy shared by the provider adapters and the anchor pipeline.

None of these errors are retried automatically; every failure needs an
explicit re-trigger from the caller.
"""
from typing import Optional

from identity_forge.core.sanitizer import (
    CONTENT_POLICY_MESSAGE,
    is_content_policy_text,
    sanitize,
    user_message_for,
)


class ForgeError(Exception):
    """Base class. ``str(exc)`` is always sanitized."""

    def __init__(self, message: str) -> None:
        self.message = sanitize(message)
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        return user_message_for(self.message)


class ConfigurationError(ForgeError):
    """A required credential or setting is missing."""

    @property
    def user_message(self) -> str:
        return self.message


class TransportError(ForgeError):
    """The request never produced an HTTP response (DNS, connect, reset...)."""


class ProviderError(ForgeError):
    """The provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(ForgeError):
    """A 2xx response carried no usable image or JSON."""


class NoImageURLError(ParseError):
    """No extraction strategy found an image URL in a chat-completion response."""

    def __init__(self, message: str = "No image URL found in response") -> None:
        super().__init__(message)


class ContentPolicyError(ForgeError):
    """The provider refused the request on safety grounds."""

    @property
    def user_message(self) -> str:
        return CONTENT_POLICY_MESSAGE


class PipelineStateError(ForgeError):
    """An anchor pipeline action was invoked from the wrong stage."""

    @property
    def user_message(self) -> str:
        return self.message


def classify_error(exc: Exception) -> ForgeError:
    """Normalize any exception into the taxonomy.

    Errors whose text looks like a safety refusal are remapped to
    :class:`ContentPolicyError`; other ForgeErrors pass through and anything
    else becomes a :class:`TransportError`.
    """
    if isinstance(exc, ContentPolicyError):
        return exc
    if isinstance(exc, ForgeError):
        if not isinstance(exc, (ConfigurationError, PipelineStateError)) and is_content_policy_text(exc.message):
            return ContentPolicyError(exc.message)
        return exc
    text = str(exc) or type(exc).__name__
    if is_content_policy_text(text):
        return ContentPolicyError(text)
    return TransportError(text)
