"""
Wire format for file envelopes.

Envelope format (file body on the wire):
┌──────────────────┬─────────┬──────────────────────────┐
│ Wrapped DEK      │   IV    │ Ciphertext               │
│ (256B)           │  (16B)  │ (N*16B, N >= 1)          │
└──────────────────┴─────────┴──────────────────────────┘

The header (wrapped DEK || IV) is fixed at 272 bytes and is never negotiated.
"""

from dataclasses import dataclass

from file_envelope.constants import (
    AES_BLOCK_SIZE,
    HEADER_SIZE,
    IV_OFFSET,
    IV_SIZE,
    MIN_ENVELOPE_SIZE,
    WRAPPED_KEY_OFFSET,
    WRAPPED_KEY_SIZE,
)
from file_envelope.exceptions import EnvelopeError, SizeError

__all__ = [
    "EnvelopeHeader",
    "envelope_overhead",
    "is_valid_envelope_size",
    "parse_header",
    "split_envelope",
    "validate_envelope_size",
]


@dataclass(frozen=True)
class EnvelopeHeader:
    """Parsed envelope header."""

    wrapped_key: bytes
    """Data-encryption key encrypted under the recipient's RSA key."""

    iv: bytes
    """AES-CBC initialisation vector."""

    def __post_init__(self) -> None:
        if len(self.wrapped_key) != WRAPPED_KEY_SIZE:
            raise EnvelopeError(f"Wrapped key must be {WRAPPED_KEY_SIZE} bytes, got {len(self.wrapped_key)}")
        if len(self.iv) != IV_SIZE:
            raise EnvelopeError(f"IV must be {IV_SIZE} bytes, got {len(self.iv)}")

    def __repr__(self) -> str:
        return f"EnvelopeHeader(wrapped_key=<{len(self.wrapped_key)} bytes>, iv={self.iv.hex()})"

    def encode(self) -> bytes:
        """
        Encode header for transmission.

        Returns:
            272-byte header: wrapped_key || iv
        """
        return self.wrapped_key + self.iv


def parse_header(data: bytes | bytearray | memoryview) -> EnvelopeHeader:
    """
    Parse envelope header from bytes.

    Args:
        data: At least 272 bytes starting with the header

    Returns:
        Parsed EnvelopeHeader

    Raises:
        SizeError: If data is shorter than the header
    """
    if len(data) < HEADER_SIZE:
        raise SizeError(len(data), HEADER_SIZE, f"Header too short: {len(data)} bytes (need {HEADER_SIZE})")

    return EnvelopeHeader(
        wrapped_key=bytes(data[WRAPPED_KEY_OFFSET : WRAPPED_KEY_OFFSET + WRAPPED_KEY_SIZE]),
        iv=bytes(data[IV_OFFSET : IV_OFFSET + IV_SIZE]),
    )


def is_valid_envelope_size(size: int, minimum: int = MIN_ENVELOPE_SIZE) -> bool:
    """Check framing: at least ``minimum`` bytes and block-aligned."""
    return size >= minimum and size % AES_BLOCK_SIZE == 0


def validate_envelope_size(size: int, minimum: int = MIN_ENVELOPE_SIZE) -> None:
    """
    Validate envelope framing before any cryptography is attempted.

    This is a structural check only: a correctly sized envelope may still
    fail key unwrapping or cipher finalization.

    Args:
        size: Total envelope length in bytes
        minimum: Minimum accepted length (288, or 352 for digest-prefixed files)

    Raises:
        SizeError: If the envelope is too short or not a multiple of 16
    """
    if not is_valid_envelope_size(size, minimum):
        raise SizeError(size, minimum)


def split_envelope(envelope: bytes, minimum: int = MIN_ENVELOPE_SIZE) -> tuple[EnvelopeHeader, bytes]:
    """
    Split a complete envelope into header and ciphertext body.

    Args:
        envelope: Complete envelope bytes
        minimum: Minimum accepted length

    Returns:
        Tuple of (header, ciphertext)

    Raises:
        SizeError: If the envelope fails framing validation
    """
    validate_envelope_size(len(envelope), minimum)
    return parse_header(envelope), envelope[HEADER_SIZE:]


def envelope_overhead(plaintext_size: int) -> int:
    """
    Calculate bytes added to a plaintext of the given size.

    PKCS#7 always adds between 1 and 16 bytes of padding.

    Returns:
        Overhead in bytes (header + padding)
    """
    padding = AES_BLOCK_SIZE - (plaintext_size % AES_BLOCK_SIZE)
    return HEADER_SIZE + padding
