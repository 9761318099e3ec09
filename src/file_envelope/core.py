"""
Non-streaming envelope encryption/decryption.

For callers that already hold the whole artifact in memory. Framing is
validated before any cryptography runs, so a malformed envelope surfaces as
SizeError and a wrong key or corrupted body as a DecryptionError subclass.

Usage (download, body already buffered):
    from file_envelope.core import BufferedEnvelopeCodec

    codec = BufferedEnvelopeCodec(private_key=private_pem)
    plaintext = codec.decrypt(response_body)

Usage (query file with embedded SHA-512 digest, served as base64):
    data = decrypt_file_data(private_pem, file_content)

Usage (push to a postbox: data and metadata sealed separately):
    sealed = seal_detached(postbox_public_key, file_bytes, {"mimeType": "application/json"})
    payload = {"symmetrical_key": sealed.symmetrical_key_b64, "iv": sealed.iv_hex, ...}
"""

from __future__ import annotations

import json
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import constant_time
from cryptography.hazmat.primitives.asymmetric import rsa

from file_envelope._logging import get_logger
from file_envelope.cipher import Buffer, CBCDecryptContext, CBCEncryptContext, sha512
from file_envelope.constants import (
    AES_BLOCK_SIZE,
    DEK_SIZE,
    DIGEST_SIZE,
    IV_SIZE,
    MIN_DIGEST_ENVELOPE_SIZE,
    MIN_ENVELOPE_SIZE,
)
from file_envelope.encoding import b64_decode, b64_encode
from file_envelope.envelope import split_envelope, validate_envelope_size
from file_envelope.exceptions import ConfigurationError, CryptoError, DigestMismatchError, EnvelopeError
from file_envelope.keys import (
    PrivateKeyLike,
    PublicKeyLike,
    load_private_key,
    load_public_key,
    unwrap_key,
    wrap_key,
)
from file_envelope.streaming import EnvelopeEncoder

__all__ = [
    "BufferedEnvelopeCodec",
    "DetachedEnvelope",
    "decrypt_envelope",
    "decrypt_file_data",
    "encrypt_envelope",
    "encrypt_file_data",
    "open_detached",
    "seal_detached",
]

_logger = get_logger(__name__)


def _open_envelope(private_key: rsa.RSAPrivateKey, envelope: Buffer, minimum: int) -> bytes:
    """Validate framing, unwrap the DEK and decrypt the body in one pass."""
    header, ciphertext = split_envelope(bytes(envelope), minimum)
    dek = unwrap_key(private_key, header.wrapped_key)
    cipher = CBCDecryptContext(dek, header.iv)
    return cipher.update(ciphertext) + cipher.finalize()


class BufferedEnvelopeCodec:
    """
    Encrypt or decrypt complete envelopes in a single call.

    Holds the key pair (either half may be omitted). Decryption needs the
    private key; encryption needs a public key, derived from the private key
    when only that is given.

    Example:
        codec = BufferedEnvelopeCodec(private_key=private_pem)
        envelope = codec.encrypt(b"payload")
        assert codec.decrypt(envelope) == b"payload"
    """

    def __init__(
        self,
        private_key: PrivateKeyLike | None = None,
        public_key: PublicKeyLike | None = None,
    ) -> None:
        """
        Initialize codec.

        Args:
            private_key: RSA private key for decryption (loaded or PEM)
            public_key: RSA public key for encryption (defaults to the public
                half of private_key)

        Raises:
            ConfigurationError: If neither key is given, or a key cannot be loaded
        """
        if private_key is None and public_key is None:
            raise ConfigurationError("BufferedEnvelopeCodec requires a private key or a public key")

        self._private_key = load_private_key(private_key) if private_key is not None else None
        self._public_key = load_public_key(public_key if public_key is not None else self._private_key)  # type: ignore[arg-type]

    def _require_private_key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            raise ConfigurationError("Decryption requires a private key")
        return self._private_key

    def encrypt(self, plaintext: Buffer) -> bytes:
        """
        Encrypt a complete plaintext.

        Args:
            plaintext: Bytes to encrypt (may be empty)

        Returns:
            Envelope: wrapped_key || iv || ciphertext
        """
        return EnvelopeEncoder(self._public_key).encrypt_all(plaintext)

    def decrypt(self, envelope: Buffer) -> bytes:
        """
        Decrypt a complete envelope.

        Args:
            envelope: Complete envelope bytes

        Returns:
            Decrypted plaintext

        Raises:
            SizeError: Shorter than 288 bytes or not a multiple of 16
            KeyUnwrapError: Wrapped key cannot be decrypted with this key
            CipherFinalizationError: Body padding invalid (wrong key, corruption)
        """
        private_key = self._require_private_key()
        try:
            return _open_envelope(private_key, envelope, MIN_ENVELOPE_SIZE)
        except CryptoError as e:
            _logger.debug("Envelope decryption failed: size=%d error_type=%s", len(envelope), type(e).__name__)
            raise

    def encrypt_file_data(self, data: Buffer) -> bytes:
        """Encrypt with a SHA-512 digest prefix (see encrypt_file_data)."""
        return EnvelopeEncoder(self._public_key, digest=True).encrypt_all(data)

    def decrypt_file_data(self, file_data: Buffer | str) -> bytes:
        """
        Decrypt a digest-prefixed file and verify its SHA-512 digest.

        Args:
            file_data: Envelope bytes, or its base64 text

        Returns:
            Verified file data

        Raises:
            EnvelopeError: Invalid base64 text
            SizeError: Shorter than 352 bytes or not a multiple of 16
            KeyUnwrapError: Wrapped key cannot be decrypted with this key
            CipherFinalizationError: Body padding invalid
            DigestMismatchError: Digest does not match the data
        """
        private_key = self._require_private_key()
        if isinstance(file_data, str):
            envelope = b64_decode(file_data)
        elif isinstance(file_data, (bytes, bytearray, memoryview)):
            envelope = bytes(file_data)
        else:
            raise EnvelopeError(f"File data must be bytes or base64 text, got {type(file_data).__name__}")

        try:
            payload = _open_envelope(private_key, envelope, MIN_DIGEST_ENVELOPE_SIZE)
            expected, data = payload[:DIGEST_SIZE], payload[DIGEST_SIZE:]
            if len(expected) < DIGEST_SIZE or not constant_time.bytes_eq(sha512(data), expected):
                raise DigestMismatchError("Hash is not valid")
        except CryptoError as e:
            _logger.debug("File decryption failed: size=%d error_type=%s", len(envelope), type(e).__name__)
            raise
        return data


def encrypt_envelope(public_key: PublicKeyLike, plaintext: Buffer) -> bytes:
    """
    Encrypt a complete plaintext into an envelope.

    Args:
        public_key: Recipient RSA public key (or private key / PEM)
        plaintext: Bytes to encrypt

    Returns:
        Envelope bytes
    """
    return BufferedEnvelopeCodec(public_key=public_key).encrypt(plaintext)


def decrypt_envelope(private_key: PrivateKeyLike, envelope: Buffer) -> bytes:
    """
    Decrypt a complete envelope.

    Args:
        private_key: Recipient RSA private key (loaded or PEM)
        envelope: Complete envelope bytes

    Returns:
        Decrypted plaintext
    """
    return BufferedEnvelopeCodec(private_key=private_key).decrypt(envelope)


def encrypt_file_data(public_key: PublicKeyLike, data: Buffer) -> bytes:
    """
    Encrypt data in the digest-prefixed file layout.

    Plaintext inside the ciphertext is ``sha512(data) || data``.
    """
    return BufferedEnvelopeCodec(public_key=public_key).encrypt_file_data(data)


def decrypt_file_data(private_key: PrivateKeyLike, file_data: Buffer | str) -> bytes:
    """Decrypt a digest-prefixed file (bytes or base64 text) and verify its digest."""
    return BufferedEnvelopeCodec(private_key=private_key).decrypt_file_data(file_data)


# =============================================================================
# DETACHED ENVELOPES
# =============================================================================


@dataclass(frozen=True)
class DetachedEnvelope:
    """
    Data and metadata sealed under one DEK/IV, with the header carried out-of-band.

    The wrapped key and IV travel in a signed request payload; only the
    ciphertexts travel as the request body.
    """

    wrapped_key: bytes
    iv: bytes
    data: bytes
    metadata: bytes

    def __repr__(self) -> str:
        return (
            f"DetachedEnvelope(wrapped_key=<{len(self.wrapped_key)} bytes>, iv={self.iv.hex()}, "
            f"data=<{len(self.data)} bytes>, metadata=<{len(self.metadata)} bytes>)"
        )

    @property
    def symmetrical_key_b64(self) -> str:
        """Wrapped key as base64 text."""
        return b64_encode(self.wrapped_key)

    @property
    def iv_hex(self) -> str:
        """IV as lowercase hex text."""
        return self.iv.hex()

    @property
    def metadata_b64(self) -> str:
        """Encrypted metadata as base64 text."""
        return b64_encode(self.metadata)


def _encode_metadata(metadata: Buffer | Mapping[str, Any]) -> bytes:
    if isinstance(metadata, Mapping):
        return json.dumps(metadata, separators=(",", ":")).encode("utf-8")
    return bytes(metadata)


def seal_detached(
    public_key: PublicKeyLike,
    data: Buffer,
    metadata: Buffer | Mapping[str, Any],
) -> DetachedEnvelope:
    """
    Encrypt data and its metadata separately under one fresh DEK and IV.

    Args:
        public_key: Recipient RSA public key (or private key / PEM)
        data: File contents
        metadata: File descriptor as bytes, or a mapping serialized to compact JSON

    Returns:
        DetachedEnvelope with wrapped key, IV and both ciphertexts

    Raises:
        ConfigurationError: Unusable key or wrong modulus size
    """
    recipient = load_public_key(public_key)
    dek = secrets.token_bytes(DEK_SIZE)
    iv = secrets.token_bytes(IV_SIZE)
    wrapped_key = wrap_key(recipient, dek)

    def _seal(plaintext: bytes) -> bytes:
        cipher = CBCEncryptContext(dek, iv)
        return cipher.update(plaintext) + cipher.finalize()

    sealed = DetachedEnvelope(
        wrapped_key=wrapped_key,
        iv=iv,
        data=_seal(bytes(data)),
        metadata=_seal(_encode_metadata(metadata)),
    )
    _logger.debug("Detached envelope sealed: data_size=%d metadata_size=%d", len(sealed.data), len(sealed.metadata))
    return sealed


def open_detached(
    private_key: PrivateKeyLike,
    wrapped_key: bytes | str,
    iv: bytes | str,
    ciphertext: Buffer,
) -> bytes:
    """
    Decrypt one ciphertext of a detached envelope.

    Args:
        private_key: Recipient RSA private key (loaded or PEM)
        wrapped_key: Wrapped key bytes, or base64 text
        iv: IV bytes, or hex text
        ciphertext: Encrypted data or metadata

    Returns:
        Decrypted plaintext

    Raises:
        EnvelopeError: Malformed wrapped key or IV text
        SizeError: Ciphertext empty or not block-aligned
        KeyUnwrapError: Wrapped key cannot be decrypted with this key
        CipherFinalizationError: Padding invalid
    """
    key = load_private_key(private_key)
    wrapped = b64_decode(wrapped_key) if isinstance(wrapped_key, str) else wrapped_key
    if isinstance(iv, str):
        try:
            iv = bytes.fromhex(iv)
        except ValueError as e:
            raise EnvelopeError("Invalid IV hex encoding") from e
    if len(iv) != IV_SIZE:
        raise EnvelopeError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")

    validate_envelope_size(len(ciphertext), AES_BLOCK_SIZE)
    dek = unwrap_key(key, wrapped)
    cipher = CBCDecryptContext(dek, iv)
    return cipher.update(ciphertext) + cipher.finalize()
