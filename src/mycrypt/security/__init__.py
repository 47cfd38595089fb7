"""Security package of mycrypt: key derivation, AEAD and the container pipelines.

This package provides:
- Argon2id key derivation with validated, persisted parameters
- AES-256-GCM seal/open over byte buffers
- the binary container format and its chunk framing
- one-shot (whole) and chunked (streaming) encryption pipelines
"""

from .kdf import DerivationParams, generate_salt, derive_key, derived_key
from .aead import AeadCipher, SealedSegment
from .container import Container, ContainerHeader, Mode, chunk_nonce
from .crypto import (
    OutputFormat,
    encrypt_buffer,
    decrypt_buffer,
    encrypt_string,
    decrypt_string,
)
from .streaming import StreamStats, encrypt_stream, decrypt_stream

__all__ = [
    "DerivationParams",
    "generate_salt",
    "derive_key",
    "derived_key",
    "AeadCipher",
    "SealedSegment",
    "Container",
    "ContainerHeader",
    "Mode",
    "chunk_nonce",
    "OutputFormat",
    "encrypt_buffer",
    "decrypt_buffer",
    "encrypt_string",
    "decrypt_string",
    "StreamStats",
    "encrypt_stream",
    "decrypt_stream",
]
