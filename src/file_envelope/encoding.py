"""
Base64 helpers for envelope material carried in text fields.

The platform serves query files as base64 text and expects wrapped keys and
metadata as base64 in signed request payloads. Decoding accepts both the
standard and the URL-safe alphabets, with or without padding.
"""

import base64
import binascii

from file_envelope.exceptions import EnvelopeError

__all__ = [
    "b64_decode",
    "b64_encode",
    "b64url_encode",
]

_B64_PAD_SIZE = 4  # Base64 padding block size


def b64_encode(data: bytes) -> str:
    """
    Encode bytes to standard base64 (with padding).

    Args:
        data: Raw bytes to encode

    Returns:
        base64 string
    """
    return base64.b64encode(data).decode("ascii")


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url string without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64_decode(s: str | bytes) -> bytes:
    """
    Decode a standard or URL-safe base64 string.

    Handles missing padding and surrounding whitespace.

    Args:
        s: base64 or base64url text

    Returns:
        Decoded bytes

    Raises:
        EnvelopeError: If the text is not valid base64
    """
    try:
        text = s.decode("ascii") if isinstance(s, bytes) else s
    except UnicodeDecodeError as e:
        raise EnvelopeError("Invalid base64 encoding") from e
    text = "".join(text.split()).replace("-", "+").replace("_", "/")
    # Add padding if needed (base64 uses 4-byte blocks)
    padding = len(text) % _B64_PAD_SIZE
    if padding:
        text += "=" * (_B64_PAD_SIZE - padding)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EnvelopeError("Invalid base64 encoding") from e
