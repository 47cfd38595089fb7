"""Self-describing binary container for mycrypt ciphertexts.

Header layout (binary, all integers big-endian):
- 4 bytes: magic b'MCRY'
- 1 byte: version (1)
- 1 byte: mode (0 = whole, 1 = streaming)
- 1 byte: salt_len (16..255)
- salt_len bytes: salt
- 4 bytes: Argon2id memory cost (KiB)
- 4 bytes: Argon2id time cost
- 4 bytes: Argon2id parallelism
- 12 bytes: base nonce
- 4 bytes: chunk size (streaming only)

Body, whole mode: exactly one record, 4-byte length + ciphertext||tag.

Body, streaming mode: records until EOF, each
4-byte length + 4-byte chunk index + 1-byte final flag + ciphertext||tag.
The index and flag are repeated inside every chunk's associated data
(together with the full header), so the clear copies only serve to
report reordering and truncation precisely; tampering with them still
fails authentication.

Chunk nonces are the base nonce with the big-endian chunk index XORed
into its low 8 bytes.
"""
import enum
import io
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, List, Optional, Tuple

from mycrypt.core.exceptions import (
    FormatError,
    ParameterError,
    StreamIntegrityError,
    TruncationError,
)

from .aead import NONCE_SIZE, TAG_SIZE, SealedSegment
from .kdf import MAX_SALT_LENGTH, MIN_SALT_LENGTH, DerivationParams

MAGIC = b"MCRY"
VERSION = 1

DEFAULT_CHUNK_SIZE = 1024 * 1024
MAX_CHUNK_SIZE = 64 * 1024 * 1024
# every chunk index must fit the 4-byte frame field
MAX_CHUNKS = 2 ** 32
# headers asking for more Argon2 memory than this are refused when decrypting
DEFAULT_MAX_MEMORY_COST_KIB = 1024 * 1024

_PARAMS = struct.Struct(">III")
_CHUNK_SIZE = struct.Struct(">I")
_WHOLE_FRAME = struct.Struct(">I")
_STREAM_FRAME = struct.Struct(">IIB")
STREAM_FRAME_OVERHEAD = _STREAM_FRAME.size + TAG_SIZE
_CHUNK_AD = struct.Struct(">QB")


class Mode(enum.IntEnum):
    WHOLE = 0
    STREAMING = 1


def validate_chunk_size(chunk_size: int) -> int:
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise ParameterError("chunk_size must be an integer")
    if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
        raise ParameterError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE} bytes")
    return chunk_size


@dataclass(frozen=True)
class ContainerHeader:
    mode: Mode
    params: DerivationParams
    salt: bytes
    base_nonce: bytes
    chunk_size: Optional[int] = None

    def __post_init__(self):
        if not MIN_SALT_LENGTH <= len(self.salt) <= MAX_SALT_LENGTH:
            raise ParameterError(
                f"salt length must be between {MIN_SALT_LENGTH} and {MAX_SALT_LENGTH} bytes"
            )
        if len(self.base_nonce) != NONCE_SIZE:
            raise ParameterError(f"nonce must be {NONCE_SIZE} bytes")
        if self.mode == Mode.STREAMING:
            if self.chunk_size is None:
                raise ParameterError("streaming containers need a chunk size")
            validate_chunk_size(self.chunk_size)
        elif self.chunk_size is not None:
            raise ParameterError("chunk size is only stored for streaming containers")

    def to_bytes(self) -> bytes:
        header = bytearray()
        header += MAGIC
        header += struct.pack("B", VERSION)
        header += struct.pack("B", int(self.mode))
        header += struct.pack("B", len(self.salt))
        header += self.salt
        header += _PARAMS.pack(
            self.params.memory_cost_kib, self.params.time_cost, self.params.parallelism
        )
        header += self.base_nonce
        if self.mode == Mode.STREAMING:
            header += _CHUNK_SIZE.pack(self.chunk_size)
        return bytes(header)


@dataclass(frozen=True)
class StreamFrame:
    index: int
    final: bool
    segment: SealedSegment


@dataclass(frozen=True)
class Container:
    """A complete container: header plus its sealed segments in order."""

    header: ContainerHeader
    segments: Tuple[SealedSegment, ...] = field(default_factory=tuple)

    @property
    def mode(self) -> Mode:
        return self.header.mode

    def to_bytes(self) -> bytes:
        out = io.BytesIO()
        out.write(self.header.to_bytes())
        if self.mode == Mode.WHOLE:
            if len(self.segments) != 1:
                raise FormatError("whole-mode containers hold exactly one segment")
            write_whole_segment(out, self.segments[0])
        else:
            if not self.segments:
                raise FormatError("streaming containers need at least the final segment")
            last = len(self.segments) - 1
            for index, segment in enumerate(self.segments):
                write_stream_frame(out, index, index == last, segment)
        return out.getvalue()

    @classmethod
    def from_bytes(
        cls, data: bytes, max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB
    ) -> "Container":
        """Parse and structurally check a container. No key is needed or used."""
        source = io.BytesIO(data)
        header = read_header(source, max_memory_cost_kib)
        if header.mode == Mode.WHOLE:
            segment = read_whole_segment(source)
            if source.read(1):
                raise FormatError("unexpected data after the ciphertext")
            return cls(header=header, segments=(segment,))
        segments: List[SealedSegment] = [frame.segment for frame in iter_stream_frames(source, header)]
        return cls(header=header, segments=tuple(segments))


def read_exact(source: BinaryIO, size: int) -> bytes:
    # read() on pipes and raw files may return short; keep going until EOF
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_header_field(source: BinaryIO, size: int, what: str) -> bytes:
    data = read_exact(source, size)
    if len(data) != size:
        raise FormatError(f"truncated header ({what})")
    return data


def check_memory_ceiling(params: DerivationParams, max_memory_cost_kib: int) -> None:
    """Refuse header parameters that would make key derivation allocate too much."""
    if params.memory_cost_kib > max_memory_cost_kib:
        raise FormatError(
            f"kdf memory cost {params.memory_cost_kib} KiB in header exceeds "
            f"the {max_memory_cost_kib} KiB limit"
        )


def read_header(
    source: BinaryIO, max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB
) -> ContainerHeader:
    """
    Read and validate a header. Magic and version are checked first.

    KDF parameters are checked here, before any key is derived, so a
    tampered cost field cannot make decryption allocate more than
    ``max_memory_cost_kib``.
    """
    magic = read_exact(source, len(MAGIC))
    if magic != MAGIC:
        raise FormatError("Invalid file format (magic mismatch)")
    version = _read_header_field(source, 1, "version")[0]
    if version != VERSION:
        raise FormatError(f"Unsupported version {version}")
    mode_byte = _read_header_field(source, 1, "mode")[0]
    try:
        mode = Mode(mode_byte)
    except ValueError:
        raise FormatError(f"Unsupported mode {mode_byte}") from None

    salt_len = _read_header_field(source, 1, "salt length")[0]
    if salt_len < MIN_SALT_LENGTH:
        raise FormatError("salt too short")
    salt = _read_header_field(source, salt_len, "salt")

    memory_cost, time_cost, parallelism = _PARAMS.unpack(
        _read_header_field(source, _PARAMS.size, "kdf parameters")
    )
    params = DerivationParams(
        memory_cost_kib=memory_cost, time_cost=time_cost, parallelism=parallelism
    )
    try:
        params.validate()
    except ParameterError as e:
        raise FormatError(f"invalid kdf parameters in header: {e}") from None
    check_memory_ceiling(params, max_memory_cost_kib)

    base_nonce = _read_header_field(source, NONCE_SIZE, "nonce")

    chunk_size = None
    if mode == Mode.STREAMING:
        (chunk_size,) = _CHUNK_SIZE.unpack(
            _read_header_field(source, _CHUNK_SIZE.size, "chunk size")
        )
        if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
            raise FormatError(f"invalid chunk size {chunk_size} in header")

    return ContainerHeader(
        mode=mode, params=params, salt=salt, base_nonce=base_nonce, chunk_size=chunk_size
    )


def write_whole_segment(sink: BinaryIO, segment: SealedSegment) -> int:
    body = segment.to_bytes()
    sink.write(_WHOLE_FRAME.pack(len(body)))
    sink.write(body)
    return _WHOLE_FRAME.size + len(body)


def read_whole_segment(source: BinaryIO) -> SealedSegment:
    prefix = read_exact(source, _WHOLE_FRAME.size)
    if len(prefix) != _WHOLE_FRAME.size:
        raise FormatError("truncated ciphertext length")
    (length,) = _WHOLE_FRAME.unpack(prefix)
    if length < TAG_SIZE:
        raise FormatError("ciphertext too short to contain an authentication tag")
    body = read_exact(source, length)
    if len(body) != length:
        raise FormatError("truncated ciphertext")
    return SealedSegment.from_bytes(body)


def encode_stream_frame(index: int, final: bool, segment: SealedSegment) -> bytes:
    if not 0 <= index < MAX_CHUNKS:
        raise ParameterError("chunk index out of range")
    body = segment.to_bytes()
    return _STREAM_FRAME.pack(len(body), index, 1 if final else 0) + body


def write_stream_frame(sink: BinaryIO, index: int, final: bool, segment: SealedSegment) -> int:
    frame = encode_stream_frame(index, final, segment)
    sink.write(frame)
    return len(frame)


def read_stream_frame(source: BinaryIO, header: ContainerHeader) -> Optional[StreamFrame]:
    """Return the next frame, or None on a clean end of input."""
    prefix = read_exact(source, _STREAM_FRAME.size)
    if not prefix:
        return None
    if len(prefix) != _STREAM_FRAME.size:
        raise TruncationError("stream ended inside a chunk frame")
    length, index, flag = _STREAM_FRAME.unpack(prefix)
    if flag not in (0, 1):
        raise FormatError(f"invalid final flag {flag} in chunk frame")
    if not TAG_SIZE <= length <= header.chunk_size + TAG_SIZE:
        raise FormatError(f"invalid chunk length {length}")
    body = read_exact(source, length)
    if len(body) != length:
        raise TruncationError("stream ended inside a chunk")
    return StreamFrame(index=index, final=bool(flag), segment=SealedSegment.from_bytes(body))


def iter_stream_frames(source: BinaryIO, header: ContainerHeader) -> Iterator[StreamFrame]:
    """
    Yield frames in order, enforcing the chunk sequence.

    Raises StreamIntegrityError on an out-of-order index or any data after
    the terminal frame, and TruncationError if input ends first. The
    terminal frame is only yielded once the end of input is confirmed.
    """
    expected = 0
    while True:
        frame = read_stream_frame(source, header)
        if frame is None:
            raise TruncationError("stream ended before the final chunk")
        if frame.index != expected:
            raise StreamIntegrityError(
                f"chunk out of order: expected index {expected}, got {frame.index}"
            )
        if frame.final:
            if source.read(1):
                raise StreamIntegrityError("data found after the final chunk")
            yield frame
            return
        yield frame
        expected += 1
        if expected >= MAX_CHUNKS:
            raise StreamIntegrityError("stream exceeds the maximum chunk count")


def chunk_nonce(base_nonce: bytes, chunk_index: int) -> bytes:
    """XOR the big-endian chunk index into the low 8 bytes of the base nonce."""
    if len(base_nonce) != NONCE_SIZE:
        raise ParameterError(f"nonce must be {NONCE_SIZE} bytes")
    if not 0 <= chunk_index < MAX_CHUNKS:
        raise ParameterError("chunk index out of range")
    counter = chunk_index.to_bytes(8, "big")
    low = bytes(a ^ b for a, b in zip(base_nonce[4:], counter))
    return bytes(base_nonce[:4]) + low


def chunk_associated_data(header_bytes: bytes, chunk_index: int, final: bool) -> bytes:
    return header_bytes + _CHUNK_AD.pack(chunk_index, 1 if final else 0)
