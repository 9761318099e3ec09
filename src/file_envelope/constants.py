"""
Constants for the file envelope wire format.

Envelope layout:
┌──────────────────┬─────────┬──────────────────────────┐
│ Wrapped DEK      │   IV    │ AES-256-CBC ciphertext   │
│ (256B, RSA-OAEP) │  (16B)  │ (N*16B, PKCS#7 padded)   │
└──────────────────┴─────────┴──────────────────────────┘
"""

from typing import Final

from cryptography.hazmat.primitives import hashes

# =============================================================================
# SYMMETRIC CIPHER (AES-256-CBC)
# =============================================================================

DEK_SIZE: Final[int] = 32
"""Data-encryption key size in bytes (AES-256)."""

IV_SIZE: Final[int] = 16
"""Initialisation vector size in bytes."""

AES_BLOCK_SIZE: Final[int] = 16
"""AES block size in bytes. Ciphertext bodies are a multiple of this."""

PKCS7_BLOCK_BITS: Final[int] = AES_BLOCK_SIZE * 8

# =============================================================================
# ASYMMETRIC CIPHER (RSA-OAEP)
# =============================================================================

RSA_KEY_SIZE: Final[int] = 2048
"""Modulus size (bits) whose OAEP output is exactly WRAPPED_KEY_SIZE bytes."""

RSA_PUBLIC_EXPONENT: Final[int] = 65537

WRAPPED_KEY_SIZE: Final[int] = RSA_KEY_SIZE // 8
"""Wrapped DEK size in bytes (fixed, never negotiated)."""

# OAEP defaults of the platform's Node SDK (crypto.publicEncrypt / node-rsa)
OAEP_HASH: Final[type[hashes.HashAlgorithm]] = hashes.SHA1

# =============================================================================
# ENVELOPE FRAMING
# =============================================================================

WRAPPED_KEY_OFFSET: Final[int] = 0
IV_OFFSET: Final[int] = WRAPPED_KEY_OFFSET + WRAPPED_KEY_SIZE

HEADER_SIZE: Final[int] = WRAPPED_KEY_SIZE + IV_SIZE
"""Fixed header size: wrapped key (256B) || IV (16B) = 272 bytes."""

MIN_ENVELOPE_SIZE: Final[int] = HEADER_SIZE + AES_BLOCK_SIZE
"""Header plus one ciphertext block = 288 bytes."""

# =============================================================================
# DIGEST-PREFIXED PAYLOAD
# =============================================================================

DIGEST_SIZE: Final[int] = 64
"""SHA-512 digest prepended to the plaintext in digest mode."""

MIN_DIGEST_ENVELOPE_SIZE: Final[int] = HEADER_SIZE + DIGEST_SIZE + AES_BLOCK_SIZE
"""Header + digest + one block of padding = 352 bytes."""

# =============================================================================
# ITERATOR ADAPTERS
# =============================================================================

CHUNK_SIZE: Final[int] = 64 * 1024
"""Default slice size when encrypting an in-memory body chunk by chunk."""
