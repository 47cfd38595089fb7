"""Chunked AES-256-GCM encryption for inputs of unbounded size.

One key is derived per stream. Each chunk is sealed under
``chunk_nonce(base_nonce, index)`` with the header, the chunk index and
the final flag as associated data. At most one chunk of plaintext is held
in memory beyond the chunk being sealed or opened.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Optional, Union

from mycrypt.core.exceptions import FormatError, ParameterError

from .aead import NONCE_SIZE, AeadCipher
from .container import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_MEMORY_COST_KIB,
    MAX_CHUNKS,
    STREAM_FRAME_OVERHEAD,
    ContainerHeader,
    Mode,
    read_exact,
    chunk_associated_data,
    chunk_nonce,
    encode_stream_frame,
    iter_stream_frames,
    read_header,
    validate_chunk_size,
)
from .kdf import DerivationParams, derived_key, generate_salt

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes]


@dataclass
class StreamStats:
    """Counters for one streaming run."""

    chunks: int = 0
    plaintext_bytes: int = 0
    container_bytes: int = 0

    @property
    def overhead_bytes(self) -> int:
        return self.container_bytes - self.plaintext_bytes


# called after every chunk with the running counters
ProgressCallback = Callable[[StreamStats], None]


def iter_encrypt(
    passphrase: Passphrase,
    source: BinaryIO,
    params: Optional[DerivationParams] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    stats: Optional[StreamStats] = None,
) -> Iterator[bytes]:
    """
    Yield the container for ``source`` piece by piece: header first, then
    one frame per chunk.

    The chunk that is followed by end of input is marked final, so one
    chunk of lookahead is read. Empty input produces a single empty final
    chunk.
    """
    params = (params or DerivationParams()).validate()
    validate_chunk_size(chunk_size)
    stats = stats if stats is not None else StreamStats()

    header = ContainerHeader(
        mode=Mode.STREAMING,
        params=params,
        salt=generate_salt(),
        base_nonce=os.urandom(NONCE_SIZE),
        chunk_size=chunk_size,
    )
    header_bytes = header.to_bytes()

    with derived_key(passphrase, header.salt, params) as key:
        aead = AeadCipher(key)
        stats.container_bytes += len(header_bytes)
        yield header_bytes

        index = 0
        chunk = read_exact(source, chunk_size)
        while True:
            following = read_exact(source, chunk_size) if len(chunk) == chunk_size else b""
            final = not following
            if index >= MAX_CHUNKS:
                raise ParameterError("input needs more chunks than the format allows; raise chunk_size")

            segment = aead.seal(
                chunk_nonce(header.base_nonce, index),
                chunk_associated_data(header_bytes, index, final),
                chunk,
            )
            frame = encode_stream_frame(index, final, segment)

            stats.chunks += 1
            stats.plaintext_bytes += len(chunk)
            stats.container_bytes += len(frame)
            yield frame

            if final:
                break
            chunk = following
            index += 1

    logger.debug(
        "stream sealed: %d chunks, %d plaintext bytes", stats.chunks, stats.plaintext_bytes
    )


def iter_decrypt(
    passphrase: Passphrase,
    source: BinaryIO,
    stats: Optional[StreamStats] = None,
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> Iterator[bytes]:
    """
    Yield authenticated plaintext chunks from a streaming container.

    Stops at the first AuthenticationError, StreamIntegrityError or
    TruncationError. Chunks already yielded remain authentic, but the
    stream as a whole must be discarded by the consumer.
    """
    stats = stats if stats is not None else StreamStats()
    header = read_header(source, max_memory_cost_kib)
    if header.mode != Mode.STREAMING:
        raise FormatError("whole-mode containers must be opened with decrypt_buffer")
    header_bytes = header.to_bytes()
    stats.container_bytes += len(header_bytes)

    with derived_key(passphrase, header.salt, header.params) as key:
        aead = AeadCipher(key)
        for frame in iter_stream_frames(source, header):
            plaintext = aead.open(
                chunk_nonce(header.base_nonce, frame.index),
                chunk_associated_data(header_bytes, frame.index, frame.final),
                frame.segment,
            )
            stats.chunks += 1
            stats.plaintext_bytes += len(plaintext)
            stats.container_bytes += STREAM_FRAME_OVERHEAD + len(plaintext)
            yield plaintext

    logger.debug(
        "stream opened: %d chunks, %d plaintext bytes", stats.chunks, stats.plaintext_bytes
    )


def encrypt_stream(
    passphrase: Passphrase,
    source: BinaryIO,
    sink: BinaryIO,
    params: Optional[DerivationParams] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[ProgressCallback] = None,
) -> StreamStats:
    """Read ``source`` in ``chunk_size`` blocks and write a streaming container to ``sink``."""
    stats = StreamStats()
    for piece in iter_encrypt(passphrase, source, params, chunk_size, stats):
        sink.write(piece)
        # the header piece leaves the chunk count at zero
        if progress is not None and stats.chunks:
            progress(stats)
    return stats


def decrypt_stream(
    passphrase: Passphrase,
    source: BinaryIO,
    sink: BinaryIO,
    progress: Optional[ProgressCallback] = None,
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> StreamStats:
    """
    Decrypt a streaming container from ``source`` into ``sink``.

    On error some authentic prefix may already be in ``sink``; callers
    writing to files should use :func:`mycrypt.core.file_ops.atomic_output`
    so that partial output is discarded.
    """
    stats = StreamStats()
    for plaintext in iter_decrypt(passphrase, source, stats, max_memory_cost_kib):
        sink.write(plaintext)
        if progress is not None:
            progress(stats)
    return stats
