"""Credential scrubbing and user-facing error wording.

Every error message that can reach a log line, an HTTP response or the CLI
passes through :func:`sanitize` first.
"""
import re

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"AIzaSy[a-zA-Z0-9_-]{33}"), "[REDACTED_GEMINI_KEY]"),
    (re.compile(r"sk-[a-zA-Z0-9]{48}"), "[REDACTED_API_KEY]"),
    (re.compile(r"Bearer\s+[a-zA-Z0-9._-]+"), "Bearer [REDACTED]"),
    (re.compile(r"(api[_-]?key|key)=[^\s&\"']+", re.IGNORECASE), r"\1=[REDACTED]"),
]

CONTENT_POLICY_KEYWORDS = ("safety", "blocked", "content policy", "prohibited")

CONTENT_POLICY_MESSAGE = "Content was blocked by safety filters. Please modify your prompt."


def sanitize(message: str) -> str:
    """Remove credential-shaped substrings from ``message``."""
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


def is_content_policy_text(message: str) -> bool:
    lower = message.lower()
    return any(keyword in lower for keyword in CONTENT_POLICY_KEYWORDS)


def user_message_for(message: str) -> str:
    """Map a (sanitized) technical error message to a short user-facing one."""
    lower = message.lower()

    if "api key" in lower or "unauthorized" in lower or "401" in lower:
        return "API key is missing or invalid. Please check your settings."
    if "quota" in lower or "rate limit" in lower or "429" in lower:
        return "API rate limit reached. Please try again in a few moments."
    if is_content_policy_text(message):
        return CONTENT_POLICY_MESSAGE
    if "network" in lower or "timed out" in lower or "connect" in lower:
        return "Network error. Please check your internet connection."
    if "model" in lower or "not found" in lower or "404" in lower:
        return "The requested AI model is not available. Please try a different model."
    return "An error occurred. Please try again."
