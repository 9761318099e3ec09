"""
RSA key handling for envelope key wrapping.

The data-encryption key (DEK) is wrapped with RSA-OAEP under the recipient's
public key. OAEP parameters match the platform's Node SDK defaults
(MGF1/SHA-1, SHA-1, no label) so envelopes interoperate in both directions.
"""

from __future__ import annotations

from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from file_envelope.constants import (
    DEK_SIZE,
    OAEP_HASH,
    RSA_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
    WRAPPED_KEY_SIZE,
)
from file_envelope.exceptions import ConfigurationError, KeyUnwrapError

__all__ = [
    "PrivateKeyLike",
    "PublicKeyLike",
    "export_private_pem",
    "export_public_pem",
    "generate_private_key",
    "load_private_key",
    "load_public_key",
    "unwrap_key",
    "wrap_key",
]

PrivateKeyLike = Union[rsa.RSAPrivateKey, bytes, str]
"""Loaded RSA private key or its PEM (PKCS#1 or PKCS#8)."""

PublicKeyLike = Union[rsa.RSAPublicKey, rsa.RSAPrivateKey, bytes, str]
"""Loaded RSA public key, a private key (its public half is used), or PEM of either."""


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=OAEP_HASH()),
        algorithm=OAEP_HASH(),
        label=None,
    )


def _pem_bytes(pem: bytes | str) -> bytes:
    return pem.encode("ascii") if isinstance(pem, str) else pem


def generate_private_key(key_size: int = RSA_KEY_SIZE) -> rsa.RSAPrivateKey:
    """
    Generate a fresh RSA private key.

    Args:
        key_size: Modulus size in bits (default 2048, the only size whose
            wrapped key fits the fixed 256-byte header field)

    Returns:
        New RSA private key
    """
    return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)


def load_private_key(key: PrivateKeyLike, password: bytes | None = None) -> rsa.RSAPrivateKey:
    """
    Load an RSA private key.

    Args:
        key: Loaded key, or PEM (``BEGIN RSA PRIVATE KEY`` or ``BEGIN PRIVATE KEY``)
        password: Passphrase for encrypted PEM

    Returns:
        RSA private key

    Raises:
        ConfigurationError: If the PEM cannot be parsed or is not an RSA key
    """
    if isinstance(key, rsa.RSAPrivateKey):
        return key
    if not isinstance(key, (bytes, str)):
        raise ConfigurationError(f"Unsupported private key type: {type(key).__name__}")

    try:
        loaded = serialization.load_pem_private_key(_pem_bytes(key), password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError("Failed to load private key") from e

    if not isinstance(loaded, rsa.RSAPrivateKey):
        raise ConfigurationError(f"Private key must be RSA, got {type(loaded).__name__}")
    return loaded


def load_public_key(key: PublicKeyLike) -> rsa.RSAPublicKey:
    """
    Load an RSA public key.

    Private keys (loaded or PEM) are accepted too; their public half is
    returned.

    Args:
        key: Loaded key or PEM (``BEGIN RSA PUBLIC KEY``, ``BEGIN PUBLIC KEY``,
            or any private key PEM)

    Returns:
        RSA public key

    Raises:
        ConfigurationError: If the PEM cannot be parsed or is not an RSA key
    """
    if isinstance(key, rsa.RSAPublicKey):
        return key
    if isinstance(key, rsa.RSAPrivateKey):
        return key.public_key()
    if not isinstance(key, (bytes, str)):
        raise ConfigurationError(f"Unsupported public key type: {type(key).__name__}")

    pem = _pem_bytes(key)
    if b"PRIVATE KEY" in pem:
        return load_private_key(pem).public_key()

    try:
        loaded = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError("Failed to load public key") from e

    if not isinstance(loaded, rsa.RSAPublicKey):
        raise ConfigurationError(f"Public key must be RSA, got {type(loaded).__name__}")
    return loaded


def export_private_pem(key: rsa.RSAPrivateKey) -> bytes:
    """Export a private key as unencrypted PKCS#1 PEM (``BEGIN RSA PRIVATE KEY``)."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


def export_public_pem(key: rsa.RSAPublicKey) -> bytes:
    """Export a public key as PKCS#1 PEM (``BEGIN RSA PUBLIC KEY``)."""
    return key.public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.PKCS1)


def wrap_key(public_key: rsa.RSAPublicKey, dek: bytes) -> bytes:
    """
    Encrypt a data-encryption key under the recipient's public key.

    Args:
        public_key: Recipient RSA public key
        dek: 32-byte data-encryption key

    Returns:
        Wrapped key (exactly WRAPPED_KEY_SIZE bytes)

    Raises:
        ConfigurationError: If the key modulus does not produce a
            WRAPPED_KEY_SIZE-byte ciphertext, or encryption fails
    """
    # The header field is fixed at WRAPPED_KEY_SIZE bytes
    if (public_key.key_size + 7) // 8 != WRAPPED_KEY_SIZE:
        raise ConfigurationError(
            f"RSA key must be {RSA_KEY_SIZE} bits to produce a {WRAPPED_KEY_SIZE}-byte wrapped key, "
            f"got {public_key.key_size}"
        )

    try:
        wrapped = public_key.encrypt(dek, _oaep())
    except ValueError as e:
        raise ConfigurationError("Failed to wrap data-encryption key") from e

    if len(wrapped) != WRAPPED_KEY_SIZE:
        raise ConfigurationError(f"Wrapped key is {len(wrapped)} bytes, expected {WRAPPED_KEY_SIZE}")
    return wrapped


def unwrap_key(private_key: rsa.RSAPrivateKey, wrapped: bytes) -> bytes:
    """
    Recover a data-encryption key from its wrapped form.

    Args:
        private_key: Recipient RSA private key
        wrapped: Wrapped key bytes from the envelope header

    Returns:
        32-byte data-encryption key

    Raises:
        KeyUnwrapError: Wrong private key, corrupted header, or a DEK of the
            wrong length
    """
    try:
        dek = private_key.decrypt(bytes(wrapped), _oaep())
    except ValueError as e:
        raise KeyUnwrapError("Failed to unwrap data-encryption key") from e

    if len(dek) != DEK_SIZE:
        raise KeyUnwrapError(f"Unwrapped key has invalid length: {len(dek)} bytes")
    return dek
