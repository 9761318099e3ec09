"""
Symmetric cipher contexts for envelope bodies.

AES-256-CBC with PKCS#7 padding, wrapped so streaming and buffered paths
share one finalization/error contract. Contexts are order-dependent (block
chaining) and owned by exactly one encode or decode operation.
"""

from cryptography.hazmat.primitives import constant_time, hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from file_envelope.constants import DIGEST_SIZE, PKCS7_BLOCK_BITS
from file_envelope.exceptions import CipherFinalizationError, DigestMismatchError

__all__ = [
    "Buffer",
    "CBCDecryptContext",
    "CBCEncryptContext",
    "DigestVerifier",
    "sha512",
]

Buffer = bytes | bytearray | memoryview


def sha512(data: Buffer) -> bytes:
    """SHA-512 digest of ``data``."""
    hasher = hashes.Hash(hashes.SHA512())
    hasher.update(bytes(data))
    return hasher.finalize()


class CBCEncryptContext:
    """AES-256-CBC encryptor with PKCS#7 padding."""

    __slots__ = ("_encryptor", "_padder")

    def __init__(self, dek: bytes, iv: bytes) -> None:
        self._encryptor = Cipher(algorithms.AES(dek), modes.CBC(iv)).encryptor()
        self._padder = padding.PKCS7(PKCS7_BLOCK_BITS).padder()

    def update(self, data: Buffer) -> bytes:
        return self._encryptor.update(self._padder.update(data))

    def finalize(self) -> bytes:
        return self._encryptor.update(self._padder.finalize()) + self._encryptor.finalize()


class CBCDecryptContext:
    """AES-256-CBC decryptor with PKCS#7 unpadding."""

    __slots__ = ("_decryptor", "_unpadder")

    def __init__(self, dek: bytes, iv: bytes) -> None:
        self._decryptor = Cipher(algorithms.AES(dek), modes.CBC(iv)).decryptor()
        self._unpadder = padding.PKCS7(PKCS7_BLOCK_BITS).unpadder()

    def update(self, data: Buffer) -> bytes:
        return self._unpadder.update(self._decryptor.update(data))

    def finalize(self) -> bytes:
        """
        Flush the final block and strip padding.

        Raises:
            CipherFinalizationError: Ciphertext not block-aligned, or padding
                invalid (wrong key, truncation, tampering)
        """
        try:
            tail = self._unpadder.update(self._decryptor.finalize())
            return tail + self._unpadder.finalize()
        except ValueError as e:
            raise CipherFinalizationError("Cipher finalization failed") from e


class DigestVerifier:
    """Strips and checks the SHA-512 digest that prefixes digest-mode plaintext.

    The first 64 plaintext bytes are withheld as the expected digest; all
    remaining bytes pass through and are hashed incrementally.
    """

    __slots__ = ("_expected", "_hasher")

    def __init__(self) -> None:
        self._expected = bytearray()
        self._hasher = hashes.Hash(hashes.SHA512())

    def update(self, data: bytes) -> bytes:
        missing = DIGEST_SIZE - len(self._expected)
        if missing > 0:
            self._expected.extend(data[:missing])
            data = data[missing:]
        if data:
            self._hasher.update(data)
        return data

    def verify(self) -> None:
        """
        Raises:
            DigestMismatchError: Digest missing or not matching the data
        """
        if len(self._expected) < DIGEST_SIZE:
            raise DigestMismatchError(f"Payload too short for digest: {len(self._expected)} bytes")
        if not constant_time.bytes_eq(self._hasher.finalize(), bytes(self._expected)):
            raise DigestMismatchError("Digest mismatch")
