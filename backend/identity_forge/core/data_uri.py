"""Helpers for images carried as data URIs (data:<mime>;base64,<payload>)."""
import base64
import binascii
import re
from typing import NamedTuple

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w-]+)*;base64,(?P<payload>.*)$", re.DOTALL)

DEFAULT_MIME_TYPE = "image/png"


class DataURI(NamedTuple):
    mime_type: str
    payload: str

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.payload)


def parse_data_uri(value: str, default_mime: str = DEFAULT_MIME_TYPE) -> DataURI:
    """Split a data URI into mime type and base64 payload.

    A bare base64 string (no ``data:`` prefix) is accepted and tagged with
    ``default_mime``.

    Raises:
        ValueError: When the value is empty or the payload is not valid base64.
    """
    if not value:
        raise ValueError("Image data is required")
    match = _DATA_URI_RE.match(value)
    if match:
        mime = match.group("mime") or default_mime
        payload = match.group("payload")
    else:
        mime, payload = default_mime, value
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image payload is not valid base64") from exc
    return DataURI(mime_type=mime, payload=payload)


def to_data_uri(data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
