"""
Exception hierarchy for file_envelope.

All envelope errors inherit from CryptoError for easy catching. Callers that
need to decide between re-downloading and re-authenticating should catch
EnvelopeError (malformed framing) and DecryptionError (wrong key or corrupted
body) separately.
"""


class CryptoError(Exception):
    """Base exception for all envelope errors."""


class EnvelopeError(CryptoError):
    """Invalid envelope framing.

    The envelope is malformed before any cryptography is attempted.
    """


class SizeError(EnvelopeError):
    """Envelope is too short or not block-aligned.

    Also raised when a stream ends before the full header arrived.
    """

    def __init__(self, size: int, minimum: int, reason: str | None = None) -> None:
        self.size = size
        self.minimum = minimum
        super().__init__(reason or f"Invalid envelope size: {size} bytes (minimum {minimum}, multiple of 16)")


class DecryptionError(CryptoError):
    """Failed to decrypt the envelope.

    Possible causes:
    - Wrong private key
    - Corrupted header or ciphertext
    - Truncated ciphertext
    """


class KeyUnwrapError(DecryptionError):
    """RSA decryption of the wrapped data-encryption key failed."""


class CipherFinalizationError(DecryptionError):
    """Symmetric finalization rejected the ciphertext (padding or integrity)."""


class DigestMismatchError(CipherFinalizationError):
    """SHA-512 digest of the decrypted data does not match the embedded digest."""


class ConfigurationError(CryptoError):
    """Key material cannot produce or read a valid envelope.

    Raised for unparsable PEM, non-RSA keys, or a modulus whose wrapped key
    would not be exactly 256 bytes.
    """


class StreamClosedError(CryptoError):
    """Codec was used after it finished or was aborted."""
