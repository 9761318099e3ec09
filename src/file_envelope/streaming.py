"""
Streaming envelope encryption and decryption.

Push-style transforms: feed chunks of any size with ``update()``, call
``finalize()`` at end-of-stream, or ``abort()`` to cancel. Output chunks come
back in input order.

Wire format:
    wrapped_key[256] || iv[16] || AES-256-CBC(PKCS#7(plaintext))

The decoder reassembles the 272-byte header from arbitrarily fragmented input
(one byte at a time, everything at once, or anything between) and produces
byte-identical plaintext regardless of fragmentation.

Digest mode (``digest=True``) carries ``sha512(data) || data`` inside the
ciphertext, the layout used for files served by the platform's query API.
"""

from __future__ import annotations

import secrets
import types
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from enum import Enum

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from typing_extensions import Self

from file_envelope._logging import get_logger
from file_envelope.cipher import Buffer, CBCDecryptContext, CBCEncryptContext, DigestVerifier
from file_envelope.constants import (
    CHUNK_SIZE,
    DEK_SIZE,
    HEADER_SIZE,
    IV_SIZE,
    MIN_DIGEST_ENVELOPE_SIZE,
    MIN_ENVELOPE_SIZE,
)
from file_envelope.envelope import EnvelopeHeader, parse_header
from file_envelope.exceptions import (
    CipherFinalizationError,
    KeyUnwrapError,
    SizeError,
    StreamClosedError,
)
from file_envelope.keys import (
    PrivateKeyLike,
    PublicKeyLike,
    load_private_key,
    load_public_key,
    unwrap_key,
    wrap_key,
)

__all__ = [
    "EnvelopeDecoder",
    "EnvelopeEncoder",
    "StreamState",
    "aiter_decrypt",
    "aiter_encrypt",
    "iter_decrypt",
    "iter_encrypt",
]

_logger = get_logger(__name__)


class StreamState(Enum):
    """Lifecycle of an encoder or decoder."""

    AWAITING_HEADER = "awaiting_header"
    """Decoder only: header bytes still being accumulated."""

    STREAMING = "streaming"
    """Cipher context initialized; chunks pass straight through it."""

    FINISHED = "finished"
    """Finalized successfully (terminal)."""

    FAILED = "failed"
    """Errored or aborted (terminal). All key material released."""


# =============================================================================
# Encoder
# =============================================================================


class EnvelopeEncoder:
    """
    Encrypt a plaintext stream into an envelope stream.

    The DEK and IV are generated and the DEK is wrapped at construction, so a
    bad key fails before a single byte is emitted. The header is emitted
    exactly once, ahead of the first ciphertext bytes (or by ``finalize()``
    for empty input).

    Example:
        encoder = EnvelopeEncoder(recipient_public_key)
        for chunk in source:
            sink.write(encoder.update(chunk))
        sink.write(encoder.finalize())
    """

    def __init__(self, public_key: PublicKeyLike, *, digest: bool = False) -> None:
        """
        Initialize encoder.

        Args:
            public_key: Recipient RSA public key (or a private key / PEM of either)
            digest: Prefix the SHA-512 digest of the plaintext. The digest must
                precede the data, so plaintext is held until ``finalize()``.

        Raises:
            ConfigurationError: Unusable key or wrong modulus size
        """
        recipient = load_public_key(public_key)

        dek = secrets.token_bytes(DEK_SIZE)
        iv = secrets.token_bytes(IV_SIZE)
        header = EnvelopeHeader(wrapped_key=wrap_key(recipient, dek), iv=iv)

        self._pending_header: bytes | None = header.encode()
        self._cipher: CBCEncryptContext | None = CBCEncryptContext(dek, iv)
        self._hasher: hashes.Hash | None = hashes.Hash(hashes.SHA512()) if digest else None
        self._held: bytearray | None = bytearray() if digest else None
        self._state = StreamState.STREAMING
        self.header = header

        _logger.debug("Encoder created: digest=%s", digest)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Abort unless the stream was finalized inside the block."""
        if self._state is not StreamState.FINISHED:
            self.abort()

    @property
    def state(self) -> StreamState:
        return self._state

    def _take_header(self) -> bytes:
        header, self._pending_header = self._pending_header, None
        return header or b""

    def _ensure_open(self) -> CBCEncryptContext:
        if self._state is not StreamState.STREAMING or self._cipher is None:
            raise StreamClosedError(f"Encoder is {self._state.value}")
        return self._cipher

    def update(self, chunk: Buffer) -> bytes:
        """
        Encrypt a plaintext chunk.

        Args:
            chunk: Plaintext bytes of any length

        Returns:
            Envelope bytes (header on the first call, then ciphertext). May be
            empty while the cipher waits for a full block.

        Raises:
            StreamClosedError: Encoder already finalized or aborted
        """
        if not chunk:
            return b""
        cipher = self._ensure_open()

        if self._hasher is not None and self._held is not None:
            self._hasher.update(bytes(chunk))
            self._held.extend(chunk)
            return b""

        return self._take_header() + cipher.update(chunk)

    def finalize(self) -> bytes:
        """
        Flush the final padded block.

        Returns:
            Remaining envelope bytes (including the header if nothing was
            emitted yet)

        Raises:
            StreamClosedError: Encoder already finalized or aborted
        """
        cipher = self._ensure_open()

        if self._hasher is not None and self._held is not None:
            body = cipher.update(self._hasher.finalize()) + cipher.update(self._held)
        else:
            body = b""
        out = self._take_header() + body + cipher.finalize()

        self._release()
        self._state = StreamState.FINISHED
        _logger.debug("Encoder finished")
        return out

    def abort(self) -> None:
        """Discard the pending header, held plaintext and cipher context. Safe in any state."""
        was = self._state
        self._release()
        self._state = StreamState.FAILED
        if was is StreamState.STREAMING:
            _logger.debug("Encoder aborted")

    def encrypt_all(self, body: Buffer) -> bytes:
        """
        Encrypt an entire body and finalize.

        Args:
            body: Complete plaintext

        Returns:
            Complete envelope
        """
        body_view = memoryview(body)
        chunks = [
            self.update(body_view[offset : offset + CHUNK_SIZE]) for offset in range(0, len(body_view), CHUNK_SIZE)
        ]
        chunks.append(self.finalize())
        return b"".join(chunks)

    def _release(self) -> None:
        self._pending_header = None
        self._cipher = None
        self._hasher = None
        if self._held is not None:
            self._held[:] = bytes(len(self._held))
            self._held = None


# =============================================================================
# Decoder
# =============================================================================


class EnvelopeDecoder:
    """
    Decrypt an arbitrarily chunked envelope stream.

    State machine:
        AWAITING_HEADER -> STREAMING -> FINISHED
                      \\            \\-> FAILED (finalization error, abort)
                       \\-> FAILED (key unwrap error, truncated header, abort)

    Header bytes accumulate until 272 have arrived. The chunk that completes
    the header may also carry ciphertext; its tail goes straight through the
    freshly initialized cipher.

    Example:
        decoder = EnvelopeDecoder(private_key)
        async for chunk in response.content.iter_any():
            sink.write(decoder.update(chunk))
        sink.write(decoder.finalize())
    """

    def __init__(self, private_key: PrivateKeyLike, *, digest: bool = False) -> None:
        """
        Initialize decoder.

        Args:
            private_key: Recipient RSA private key (loaded or PEM)
            digest: Expect and verify a SHA-512 digest prefix

        Raises:
            ConfigurationError: If the private key cannot be loaded
        """
        self._private_key: rsa.RSAPrivateKey | None = load_private_key(private_key)
        self._digest = digest
        self._state = StreamState.AWAITING_HEADER
        self._header_buffer = bytearray()
        self._remaining = HEADER_SIZE
        self._cipher: CBCDecryptContext | None = None
        self._verifier: DigestVerifier | None = None
        self._header: EnvelopeHeader | None = None
        self.bytes_received = 0
        self.bytes_emitted = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Abort unless the stream was finalized inside the block."""
        if self._state is not StreamState.FINISHED:
            self.abort()

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def header(self) -> EnvelopeHeader | None:
        """Parsed header once 272 bytes have arrived."""
        return self._header

    @property
    def remaining_header_bytes(self) -> int:
        return self._remaining

    def update(self, chunk: Buffer) -> bytes:
        """
        Feed an envelope chunk.

        Args:
            chunk: Envelope bytes of any length

        Returns:
            Decrypted plaintext available so far (possibly empty)

        Raises:
            KeyUnwrapError: Header complete but the wrapped key cannot be
                decrypted with this private key
            StreamClosedError: Decoder already finished, failed or aborted
        """
        if not chunk:
            return b""

        if self._state is StreamState.STREAMING:
            self.bytes_received += len(chunk)
            return self._decrypt(chunk)

        if self._state is StreamState.AWAITING_HEADER:
            self.bytes_received += len(chunk)
            return self._consume_header(chunk)

        raise StreamClosedError(f"Decoder is {self._state.value}")

    def _consume_header(self, chunk: Buffer) -> bytes:
        if len(chunk) < self._remaining:
            self._header_buffer.extend(chunk)
            self._remaining -= len(chunk)
            return b""

        view = memoryview(chunk)
        self._header_buffer.extend(view[: self._remaining])
        tail = view[self._remaining :]
        self._remaining = 0

        self._start_streaming()
        if not tail:
            return b""
        return self._decrypt(tail)

    def _start_streaming(self) -> None:
        header = parse_header(self._header_buffer)
        self._wipe_header_buffer()

        private_key = self._private_key
        self._private_key = None
        if private_key is None:
            raise StreamClosedError("Private key already released")
        try:
            dek = unwrap_key(private_key, header.wrapped_key)
        except KeyUnwrapError:
            self._fail("KeyUnwrapError")
            raise

        self._header = header
        self._cipher = CBCDecryptContext(dek, header.iv)
        self._verifier = DigestVerifier() if self._digest else None
        self._state = StreamState.STREAMING
        _logger.debug("Envelope header complete: bytes_received=%d digest=%s", self.bytes_received, self._digest)

    def _decrypt(self, data: Buffer) -> bytes:
        assert self._cipher is not None
        out = self._cipher.update(data)
        if self._verifier is not None:
            out = self._verifier.update(out)
        self.bytes_emitted += len(out)
        return out

    def finalize(self) -> bytes:
        """
        Signal end-of-stream.

        Returns:
            Final plaintext bytes (padding removed)

        Raises:
            SizeError: Stream ended before the header was complete
            CipherFinalizationError: Padding or digest check failed
            StreamClosedError: Decoder already finished, failed or aborted
        """
        if self._state is StreamState.AWAITING_HEADER:
            received = self.bytes_received
            self._fail("SizeError")
            raise SizeError(
                received,
                MIN_DIGEST_ENVELOPE_SIZE if self._digest else MIN_ENVELOPE_SIZE,
                f"Stream ended inside header: {received} bytes (need {HEADER_SIZE})",
            )

        if self._state is not StreamState.STREAMING or self._cipher is None:
            raise StreamClosedError(f"Decoder is {self._state.value}")

        try:
            out = self._cipher.finalize()
            if self._verifier is not None:
                out = self._verifier.update(out)
                self._verifier.verify()
        except CipherFinalizationError as e:
            self._fail(type(e).__name__)
            raise

        self.bytes_emitted += len(out)
        self._release()
        self._state = StreamState.FINISHED
        _logger.debug(
            "Decoder finished: bytes_received=%d bytes_emitted=%d", self.bytes_received, self.bytes_emitted
        )
        return out

    def abort(self) -> None:
        """
        Cancel decoding and release all state.

        Safe to call in any state, including mid-header; never raises.
        """
        was = self._state
        self._release()
        self._state = StreamState.FAILED
        if was in (StreamState.AWAITING_HEADER, StreamState.STREAMING):
            _logger.debug("Decoder aborted: state=%s bytes_received=%d", was.value, self.bytes_received)

    def decrypt_all(self, envelope: Buffer) -> bytes:
        """
        Decrypt a complete envelope through the streaming path.

        Args:
            envelope: Complete envelope bytes

        Returns:
            Decrypted plaintext
        """
        return self.update(envelope) + self.finalize()

    def _fail(self, error_type: str) -> None:
        self._release()
        self._state = StreamState.FAILED
        _logger.debug("Decoder failed: error_type=%s bytes_received=%d", error_type, self.bytes_received)

    def _wipe_header_buffer(self) -> None:
        self._header_buffer[:] = bytes(len(self._header_buffer))
        self._header_buffer = bytearray()

    def _release(self) -> None:
        self._wipe_header_buffer()
        self._private_key = None
        self._cipher = None
        self._verifier = None


# =============================================================================
# Iterator adapters
# =============================================================================

_Codec = EnvelopeEncoder | EnvelopeDecoder


def _drive(codec: _Codec, chunks: Iterable[Buffer]) -> Iterator[bytes]:
    try:
        for chunk in chunks:
            out = codec.update(chunk)
            if out:
                yield out
        out = codec.finalize()
        if out:
            yield out
    finally:
        if codec.state not in (StreamState.FINISHED, StreamState.FAILED):
            codec.abort()


async def _adrive(codec: _Codec, chunks: AsyncIterable[Buffer]) -> AsyncIterator[bytes]:
    try:
        async for chunk in chunks:
            out = codec.update(chunk)
            if out:
                yield out
        out = codec.finalize()
        if out:
            yield out
    finally:
        if codec.state not in (StreamState.FINISHED, StreamState.FAILED):
            codec.abort()


def iter_encrypt(public_key: PublicKeyLike, chunks: Iterable[Buffer], *, digest: bool = False) -> Iterator[bytes]:
    """
    Encrypt an iterable of plaintext chunks.

    The encoder is created eagerly, so key errors raise here rather than on
    first iteration. Closing the returned iterator early aborts the encoder.

    Returns:
        Iterator of non-empty envelope chunks
    """
    return _drive(EnvelopeEncoder(public_key, digest=digest), chunks)


def iter_decrypt(private_key: PrivateKeyLike, chunks: Iterable[Buffer], *, digest: bool = False) -> Iterator[bytes]:
    """
    Decrypt an iterable of envelope chunks.

    Closing the returned iterator early, or an error from the source, aborts
    the decoder and releases its state.

    Returns:
        Iterator of non-empty plaintext chunks
    """
    return _drive(EnvelopeDecoder(private_key, digest=digest), chunks)


def aiter_encrypt(
    public_key: PublicKeyLike, chunks: AsyncIterable[Buffer], *, digest: bool = False
) -> AsyncIterator[bytes]:
    """Async variant of iter_encrypt (e.g. for a streamed upload body)."""
    return _adrive(EnvelopeEncoder(public_key, digest=digest), chunks)


def aiter_decrypt(
    private_key: PrivateKeyLike, chunks: AsyncIterable[Buffer], *, digest: bool = False
) -> AsyncIterator[bytes]:
    """
    Async variant of iter_decrypt.

    Example:
        async with session.get(url) as response:
            async for plaintext in aiter_decrypt(private_key, response.content.iter_any()):
                sink.write(plaintext)
    """
    return _adrive(EnvelopeDecoder(private_key, digest=digest), chunks)
