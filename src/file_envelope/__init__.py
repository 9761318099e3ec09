"""
Hybrid RSA/AES envelope encryption for file payloads.

Files moving between the SDK and the data-exchange platform are protected with
a per-file AES-256-CBC key (DEK) wrapped under the recipient's RSA key:

    wrapped_key[256] || iv[16] || ciphertext[N*16]

Usage (streaming download):
    from file_envelope import EnvelopeDecoder

    decoder = EnvelopeDecoder(private_key_pem)
    async for chunk in response.content.iter_any():
        sink.write(decoder.update(chunk))
    sink.write(decoder.finalize())

Usage (buffered):
    from file_envelope import decrypt_envelope, encrypt_envelope

    envelope = encrypt_envelope(public_key_pem, b"payload")
    plaintext = decrypt_envelope(private_key_pem, envelope)
"""

from file_envelope.constants import HEADER_SIZE, IV_SIZE, MIN_ENVELOPE_SIZE, WRAPPED_KEY_SIZE
from file_envelope.core import (
    BufferedEnvelopeCodec,
    DetachedEnvelope,
    decrypt_envelope,
    decrypt_file_data,
    encrypt_envelope,
    encrypt_file_data,
    open_detached,
    seal_detached,
)
from file_envelope.envelope import EnvelopeHeader
from file_envelope.exceptions import (
    CipherFinalizationError,
    ConfigurationError,
    CryptoError,
    DecryptionError,
    DigestMismatchError,
    EnvelopeError,
    KeyUnwrapError,
    SizeError,
    StreamClosedError,
)
from file_envelope.streaming import (
    EnvelopeDecoder,
    EnvelopeEncoder,
    StreamState,
    aiter_decrypt,
    aiter_encrypt,
    iter_decrypt,
    iter_encrypt,
)

__all__ = [
    # Constants
    "HEADER_SIZE",
    "IV_SIZE",
    "MIN_ENVELOPE_SIZE",
    "WRAPPED_KEY_SIZE",
    # Streaming
    "EnvelopeDecoder",
    "EnvelopeEncoder",
    "StreamState",
    "aiter_decrypt",
    "aiter_encrypt",
    "iter_decrypt",
    "iter_encrypt",
    # Buffered
    "BufferedEnvelopeCodec",
    "DetachedEnvelope",
    "EnvelopeHeader",
    "decrypt_envelope",
    "decrypt_file_data",
    "encrypt_envelope",
    "encrypt_file_data",
    "open_detached",
    "seal_detached",
    # Exceptions
    "CipherFinalizationError",
    "ConfigurationError",
    "CryptoError",
    "DecryptionError",
    "DigestMismatchError",
    "EnvelopeError",
    "KeyUnwrapError",
    "SizeError",
    "StreamClosedError",
]

__version__ = "0.1.0"
