"""Conversion between URL-safe base64 VAPID keys and raw bytes."""

import base64
import binascii
import re

from push_coordinator.errors import MalformedKey

_URLSAFE_KEY = re.compile(r"[A-Za-z0-9_-]+={0,2}")


def decode(base64url: str) -> bytes:
    """Decode a base64url VAPID key into the binary form the push API expects.

    Pads with ``=`` to a multiple of four, maps ``-``/``_`` to ``+``/``/``
    and decodes strictly. Raises MalformedKey for anything else.
    """
    if not isinstance(base64url, str) or not _URLSAFE_KEY.fullmatch(base64url):
        raise MalformedKey(f"Key contains characters outside the base64url alphabet: {base64url!r}")

    padding = "=" * ((4 - len(base64url) % 4) % 4)
    normalized = (base64url + padding).replace("-", "+").replace("_", "/")

    # A length of 4n+1 survives padding but never decodes
    try:
        return base64.b64decode(normalized, validate=True)
    except binascii.Error as e:
        raise MalformedKey(f"Key could not be decoded: {e}") from e


def encode(raw: bytes) -> str:
    """Encode raw bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")
