"""Shared test fixtures for file_envelope tests."""

import logging
import random
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from file_envelope.keys import export_private_pem, export_public_pem, generate_private_key
from file_envelope.streaming import EnvelopeEncoder

# Enable file_envelope debug logging during tests
logging.getLogger("file_envelope").setLevel(logging.DEBUG)
logging.getLogger("file_envelope").addHandler(logging.StreamHandler())


# === Payload Test Constants ===

# Round-trip sizes: empty, sub-block, exact block, block + 1, page, > 1MB
ROUNDTRIP_SIZES = [0, 1, 15, 16, 17, 4096, 1024 * 1024 + 123]
ROUNDTRIP_SIZES_IDS = ["0B", "1B", "15B", "16B", "17B", "4KB", "1MB+"]


# === Cryptographic Analysis Helpers ===


def calculate_shannon_entropy(data: bytes) -> float:
    """Calculate Shannon entropy in bits per byte (0-8 scale)."""
    import math
    from collections import Counter

    if not data:
        return 0.0
    freq = Counter(data)
    total = len(data)
    return -sum((c / total) * math.log2(c / total) for c in freq.values())


def chi_square_byte_uniformity(data: bytes) -> tuple[float, float]:
    """Test if byte distribution is uniform. Returns (chi2, p_value)."""
    import numpy as np
    from scipy import stats  # type: ignore[import-untyped]

    observed = np.bincount(np.frombuffer(data, dtype=np.uint8), minlength=256)
    expected = len(data) / 256
    chi2_result = stats.chisquare(observed, f_exp=[expected] * 256)  # type: ignore[reportUnknownMemberType]
    return float(chi2_result.statistic), float(chi2_result.pvalue)  # type: ignore[reportUnknownMemberType]


# Even truly random data fails chi-square at rate = threshold (by definition).
# Running multiple trials and allowing few failures reduces flakiness.
CHI_SQUARE_TRIALS: int = 10
CHI_SQUARE_MIN_PASS: int = 8
CHI_SQUARE_P_THRESHOLD: float = 0.01


# === Chunking Helpers ===


def split_every(data: bytes, size: int) -> list[bytes]:
    """Split data into fixed-size chunks (last one may be shorter)."""
    return [data[offset : offset + size] for offset in range(0, len(data), size)]


def split_random(data: bytes, seed: int, max_size: int = 97) -> list[bytes]:
    """Split data into chunks of random size in [0, max_size], including empty chunks."""
    rng = random.Random(seed)
    chunks: list[bytes] = []
    offset = 0
    while offset < len(data):
        size = rng.randint(0, max_size)
        chunks.append(data[offset : offset + size])
        offset += size
    return chunks


def split_at(data: bytes, *offsets: int) -> list[bytes]:
    """Split data at the given absolute offsets."""
    bounds = [0, *offsets, len(data)]
    return [data[start:end] for start, end in zip(bounds, bounds[1:])]


def flip_byte(data: bytes, index: int, mask: int = 0xFF) -> bytes:
    """Return a copy of data with one byte XORed with mask."""
    corrupted = bytearray(data)
    corrupted[index] ^= mask
    return bytes(corrupted)


def build_reference_envelope(public_key: rsa.RSAPublicKey, plaintext: bytes, dek: bytes, iv: bytes) -> bytes:
    """Build an envelope directly from primitives, the way the Node SDK does.

    crypto.publicEncrypt (OAEP/SHA-1) || iv || aes-256-cbc(plaintext)
    """
    wrapped = public_key.encrypt(
        dek,
        padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA1()), algorithm=hashes.SHA1(), label=None),
    )
    padder = sym_padding.PKCS7(128).padder()
    encryptor = Cipher(algorithms.AES(dek), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padder.update(plaintext) + padder.finalize()) + encryptor.finalize()
    return wrapped + iv + ciphertext


# === Key Fixtures ===


@pytest.fixture(scope="session")
def recipient_key() -> rsa.RSAPrivateKey:
    """2048-bit RSA key pair for the envelope recipient.

    Session-scoped: RSA generation is slow, one key serves all tests.
    """
    return generate_private_key()


@pytest.fixture(scope="session")
def other_key() -> rsa.RSAPrivateKey:
    """Unrelated 2048-bit key for wrong-key tests."""
    return generate_private_key()


@pytest.fixture(scope="session")
def short_key() -> rsa.RSAPrivateKey:
    """1024-bit key: wraps to 128 bytes, unusable for the fixed header."""
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


@pytest.fixture(scope="session")
def recipient_public_key(recipient_key: rsa.RSAPrivateKey) -> rsa.RSAPublicKey:
    return recipient_key.public_key()


@pytest.fixture(scope="session")
def private_pem_pkcs1(recipient_key: rsa.RSAPrivateKey) -> bytes:
    """Private key as ``BEGIN RSA PRIVATE KEY`` PEM."""
    return export_private_pem(recipient_key)


@pytest.fixture(scope="session")
def private_pem_pkcs8(recipient_key: rsa.RSAPrivateKey) -> bytes:
    """Private key as ``BEGIN PRIVATE KEY`` PEM."""
    return recipient_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def public_pem_pkcs1(recipient_key: rsa.RSAPrivateKey) -> bytes:
    """Public key as ``BEGIN RSA PUBLIC KEY`` PEM."""
    return export_public_pem(recipient_key.public_key())


@pytest.fixture(scope="session")
def public_pem_spki(recipient_key: rsa.RSAPrivateKey) -> bytes:
    """Public key as ``BEGIN PUBLIC KEY`` PEM."""
    return recipient_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


# === Envelope Fixtures ===


@dataclass
class SealedPayload:
    """Plaintext with its envelope, for decode-side tests."""

    plaintext: bytes
    envelope: bytes


@pytest.fixture(scope="session")
def sealed_factory(recipient_public_key: rsa.RSAPublicKey) -> Callable[..., SealedPayload]:
    """Factory for plaintext/envelope pairs.

    Usage:
        def test_something(sealed_factory):
            sealed = sealed_factory(4096)            # random 4KB plaintext
            digest = sealed_factory(100, digest=True)
    """

    def _make(size: int, *, digest: bool = False, seed: int = 0) -> SealedPayload:
        plaintext = random.Random(seed).randbytes(size)
        envelope = EnvelopeEncoder(recipient_public_key, digest=digest).encrypt_all(plaintext)
        return SealedPayload(plaintext=plaintext, envelope=envelope)

    return _make


@pytest.fixture(scope="session")
def sealed(sealed_factory: Callable[..., SealedPayload]) -> SealedPayload:
    """1000-byte plaintext sealed for recipient_key (envelope is 272 + 1008 bytes)."""
    return sealed_factory(1000, seed=42)


async def aiter_chunks(chunks: list[bytes]) -> AsyncIterator[bytes]:
    """Async source over a list of chunks (stand-in for a transport body)."""
    for chunk in chunks:
        yield chunk
