"""AES-256-GCM seal/open over byte buffers."""
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mycrypt.core.exceptions import AuthenticationError, FormatError, ParameterError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

KeyLike = Union[bytes, bytearray]


@dataclass(frozen=True)
class SealedSegment:
    """Output of one seal call: ciphertext plus its 16-byte GCM tag."""

    ciphertext: bytes
    tag: bytes

    def to_bytes(self) -> bytes:
        return self.ciphertext + self.tag

    @classmethod
    def from_bytes(cls, data: bytes) -> "SealedSegment":
        if len(data) < TAG_SIZE:
            raise FormatError("segment too short to contain an authentication tag")
        return cls(ciphertext=bytes(data[:-TAG_SIZE]), tag=bytes(data[-TAG_SIZE:]))

    def __len__(self) -> int:
        return len(self.ciphertext) + len(self.tag)


class AeadCipher:
    """
    Thin wrapper around :class:`AESGCM` bound to one key.

    The cipher is deterministic for a given nonce; callers must never seal
    twice under the same (key, nonce) pair.
    """

    def __init__(self, key: KeyLike):
        if len(key) != KEY_SIZE:
            raise ParameterError(f"key must be {KEY_SIZE} bytes")
        self._aead = AESGCM(key)

    @staticmethod
    def _check_nonce(nonce: bytes) -> None:
        if len(nonce) != NONCE_SIZE:
            raise ParameterError(f"nonce must be {NONCE_SIZE} bytes")

    def seal(self, nonce: bytes, associated_data: bytes, plaintext: bytes) -> SealedSegment:
        self._check_nonce(nonce)
        ct = self._aead.encrypt(nonce, plaintext, associated_data)
        return SealedSegment(ciphertext=ct[:-TAG_SIZE], tag=ct[-TAG_SIZE:])

    def open(self, nonce: bytes, associated_data: bytes, segment: SealedSegment) -> bytes:
        """Return the plaintext or raise AuthenticationError; never a partial result."""
        self._check_nonce(nonce)
        try:
            return self._aead.decrypt(nonce, segment.to_bytes(), associated_data)
        except InvalidTag:
            raise AuthenticationError("authentication failed") from None


def seal(key: KeyLike, nonce: bytes, associated_data: bytes, plaintext: bytes) -> SealedSegment:
    return AeadCipher(key).seal(nonce, associated_data, plaintext)


def open_segment(
    key: KeyLike, nonce: bytes, associated_data: bytes, segment: SealedSegment
) -> bytes:
    return AeadCipher(key).open(nonce, associated_data, segment)
