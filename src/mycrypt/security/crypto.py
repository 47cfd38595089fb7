"""One-shot encryption of in-memory buffers, plus the text token transport.

A whole-mode container carries a single AES-256-GCM segment sealed under a
fresh random nonce. The serialized header (salt and KDF parameters
included) is the segment's associated data, so any change to the
metadata fails authentication exactly like a wrong passphrase does.
"""
import base64
import binascii
import enum
import logging
import os
import string
from typing import Optional, Union

from mycrypt.core.exceptions import FormatError

from .aead import NONCE_SIZE, AeadCipher
from .container import (
    DEFAULT_MAX_MEMORY_COST_KIB,
    Container,
    ContainerHeader,
    Mode,
    check_memory_ceiling,
)
from .kdf import DerivationParams, derived_key, generate_salt

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes]

_HEX_DIGITS = frozenset(string.hexdigits)


class OutputFormat(str, enum.Enum):
    BASE64 = "base64"
    HEX = "hex"


def encrypt_buffer(
    passphrase: Passphrase,
    plaintext: bytes,
    params: Optional[DerivationParams] = None,
) -> Container:
    """Encrypt ``plaintext`` in one shot and return a whole-mode container."""
    params = (params or DerivationParams()).validate()
    header = ContainerHeader(
        mode=Mode.WHOLE,
        params=params,
        salt=generate_salt(),
        base_nonce=os.urandom(NONCE_SIZE),
    )
    associated_data = header.to_bytes()

    with derived_key(passphrase, header.salt, params) as key:
        segment = AeadCipher(key).seal(header.base_nonce, associated_data, bytes(plaintext))

    logger.debug("sealed %d bytes in whole mode", len(plaintext))
    return Container(header=header, segments=(segment,))


def decrypt_buffer(
    passphrase: Passphrase,
    container: Union[Container, bytes],
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> bytes:
    """
    Decrypt a whole-mode container (object or raw bytes).

    Raises AuthenticationError for a wrong passphrase and for tampering
    alike, FormatError for bytes that are not a whole-mode container or
    whose KDF memory cost exceeds ``max_memory_cost_kib``.
    """
    if not isinstance(container, Container):
        container = Container.from_bytes(bytes(container), max_memory_cost_kib)
    else:
        check_memory_ceiling(container.header.params, max_memory_cost_kib)
    if container.mode != Mode.WHOLE:
        raise FormatError("streaming containers must be opened with decrypt_stream")
    if len(container.segments) != 1:
        raise FormatError("whole-mode containers hold exactly one segment")

    header = container.header
    with derived_key(passphrase, header.salt, header.params) as key:
        plaintext = AeadCipher(key).open(
            header.base_nonce, header.to_bytes(), container.segments[0]
        )

    logger.debug("opened %d bytes in whole mode", len(plaintext))
    return plaintext


def encode_token(data: bytes, output_format: OutputFormat = OutputFormat.BASE64) -> str:
    if OutputFormat(output_format) == OutputFormat.HEX:
        return data.hex()
    return base64.b64encode(data).decode("ascii")


def decode_token(token: str) -> bytes:
    """Decode a hex or base64 token; hex is assumed when the token is pure hex."""
    token = "".join(token.split())
    if not token:
        raise FormatError("empty token")
    if len(token) % 2 == 0 and set(token) <= _HEX_DIGITS:
        return bytes.fromhex(token)
    try:
        return base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError):
        raise FormatError("token is neither valid base64 nor hex") from None


def encrypt_string(
    text: str,
    passphrase: Passphrase,
    params: Optional[DerivationParams] = None,
    output_format: OutputFormat = OutputFormat.BASE64,
) -> str:
    """Encrypt text and return the whole container as a copy/paste-safe token."""
    container = encrypt_buffer(passphrase, text.encode("utf-8"), params)
    return encode_token(container.to_bytes(), output_format)


def decrypt_string(
    token: str,
    passphrase: Passphrase,
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> str:
    plaintext = decrypt_buffer(passphrase, decode_token(token), max_memory_cost_kib)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise FormatError("decrypted data is not UTF-8 text") from None
