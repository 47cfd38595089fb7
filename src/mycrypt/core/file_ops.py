"""
File-level helpers around the security pipelines.

Output is always written to a temporary file next to the destination and
moved into place only when the whole operation succeeded, so a failed
decryption never leaves unauthenticated or partial plaintext behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from mycrypt.core.config import CryptConfig
from mycrypt.core.exceptions import OutputPathError
from mycrypt.security.container import DEFAULT_MAX_MEMORY_COST_KIB, Mode, read_header
from mycrypt.security.crypto import decrypt_buffer, encrypt_buffer
from mycrypt.security.streaming import (
    ProgressCallback,
    StreamStats,
    decrypt_stream,
    encrypt_stream,
)

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".enc"

PathLike = Union[str, Path]
Passphrase = Union[str, bytes]


def determine_output_path(input_path: PathLike, output: Optional[PathLike], encrypt: bool) -> Path:
    """Use ``output`` if given; otherwise add ``.enc`` on encrypt or drop the last suffix on decrypt."""
    if output is not None:
        return Path(output)

    src = Path(input_path)
    if not src.name:
        raise OutputPathError(f"invalid file name: {input_path}")
    if encrypt:
        return src.with_name(src.name + ENCRYPTED_SUFFIX)
    if not src.suffix:
        raise OutputPathError(
            f"cannot derive an output name for {src.name}; pass an explicit output path"
        )
    return src.with_name(src.stem)


@contextmanager
def atomic_output(path: PathLike) -> Iterator[BinaryIO]:
    """Yield a writable binary file that replaces ``path`` only if the block succeeds."""
    destination = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
        os.replace(tmp_path, destination)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise


def encrypt_file_stream(
    in_path: PathLike,
    out_path: PathLike,
    passphrase: Passphrase,
    config: CryptConfig,
    progress: Optional[ProgressCallback] = None,
) -> StreamStats:
    with open(in_path, "rb") as inf, atomic_output(out_path) as outf:
        stats = encrypt_stream(
            passphrase, inf, outf, config.params, config.chunk_size, progress=progress
        )
    logger.info("encrypted %s -> %s (%d chunks)", in_path, out_path, stats.chunks)
    return stats


def decrypt_file_stream(
    in_path: PathLike,
    out_path: PathLike,
    passphrase: Passphrase,
    progress: Optional[ProgressCallback] = None,
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> StreamStats:
    with open(in_path, "rb") as inf, atomic_output(out_path) as outf:
        stats = decrypt_stream(
            passphrase, inf, outf, progress=progress, max_memory_cost_kib=max_memory_cost_kib
        )
    logger.info("decrypted %s -> %s (%d chunks)", in_path, out_path, stats.chunks)
    return stats


def encrypt_file(
    in_path: PathLike,
    out_path: PathLike,
    passphrase: Passphrase,
    config: CryptConfig,
    streaming: Optional[bool] = None,
    progress: Optional[ProgressCallback] = None,
) -> Mode:
    """
    Encrypt a file and return the container mode that was used.

    When ``streaming`` is None the mode is picked from the file size and
    ``config.streaming_threshold``. ``progress`` is only called in streaming
    mode, once per chunk.
    """
    if streaming is None:
        streaming = os.path.getsize(in_path) > config.streaming_threshold

    if streaming:
        encrypt_file_stream(in_path, out_path, passphrase, config, progress)
        return Mode.STREAMING

    data = Path(in_path).read_bytes()
    container = encrypt_buffer(passphrase, data, config.params)
    with atomic_output(out_path) as outf:
        outf.write(container.to_bytes())
    logger.info("encrypted %s -> %s (%d bytes)", in_path, out_path, len(data))
    return Mode.WHOLE


def read_file_mode(path: PathLike, max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB) -> Mode:
    with open(path, "rb") as f:
        return read_header(f, max_memory_cost_kib).mode


def decrypt_file(
    in_path: PathLike,
    out_path: PathLike,
    passphrase: Passphrase,
    progress: Optional[ProgressCallback] = None,
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB,
) -> Mode:
    """Decrypt a whole or streaming container file; the mode comes from its header."""
    mode = read_file_mode(in_path, max_memory_cost_kib)
    if mode == Mode.STREAMING:
        decrypt_file_stream(in_path, out_path, passphrase, progress, max_memory_cost_kib)
        return mode

    plaintext = decrypt_buffer(passphrase, Path(in_path).read_bytes(), max_memory_cost_kib)
    with atomic_output(out_path) as outf:
        outf.write(plaintext)
    logger.info("decrypted %s -> %s (%d bytes)", in_path, out_path, len(plaintext))
    return mode
