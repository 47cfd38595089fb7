"""Unit tests for file-level encryption helpers."""

import os
from pathlib import Path

import pytest

from mycrypt.core.config import CryptConfig
from mycrypt.core.exceptions import (
    AuthenticationError,
    FormatError,
    OutputPathError,
    TruncationError,
)
from mycrypt.core.file_ops import (
    atomic_output,
    decrypt_file,
    determine_output_path,
    encrypt_file,
    read_file_mode,
)
from mycrypt.security.container import Mode
from mycrypt.security.kdf import DerivationParams


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def config():
    return CryptConfig(
        params=DerivationParams(memory_cost_kib=64, time_cost=1, parallelism=1),
        chunk_size=1024,
        streaming_threshold=4096,
    )


@pytest.fixture
def small_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"small secret")
    return path


@pytest.fixture
def large_file(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(os.urandom(10_000))
    return path


def _leftovers(directory: Path):
    return sorted(p.name for p in directory.iterdir() if p.name.endswith(".tmp"))


# ==============================================================================
# Tests: Output paths
# ==============================================================================

def test_output_path_explicit(tmp_path):
    assert determine_output_path("a.txt", tmp_path / "x", encrypt=True) == tmp_path / "x"


def test_output_path_encrypt_appends_suffix():
    assert determine_output_path("dir/report.pdf", None, encrypt=True) == Path("dir/report.pdf.enc")


def test_output_path_decrypt_strips_suffix():
    assert determine_output_path("dir/report.pdf.enc", None, encrypt=False) == Path("dir/report.pdf")


def test_output_path_decrypt_without_suffix():
    with pytest.raises(OutputPathError):
        determine_output_path("dir/README", None, encrypt=False)


# ==============================================================================
# Tests: Atomic output
# ==============================================================================

def test_atomic_output_commits_on_success(tmp_path):
    target = tmp_path / "out.bin"
    with atomic_output(target) as f:
        f.write(b"done")
        assert not target.exists()
    assert target.read_bytes() == b"done"
    assert _leftovers(tmp_path) == []


def test_atomic_output_discards_on_error(tmp_path):
    target = tmp_path / "out.bin"
    target.write_bytes(b"previous")
    with pytest.raises(RuntimeError):
        with atomic_output(target) as f:
            f.write(b"partial")
            raise RuntimeError("fail")
    assert target.read_bytes() == b"previous"
    assert _leftovers(tmp_path) == []


# ==============================================================================
# Tests: Encrypt / decrypt files
# ==============================================================================

def test_small_file_uses_whole_mode(small_file, tmp_path, config):
    enc = tmp_path / "notes.txt.enc"
    assert encrypt_file(small_file, enc, "pw", config) == Mode.WHOLE
    assert read_file_mode(enc) == Mode.WHOLE

    dec = tmp_path / "notes.out"
    assert decrypt_file(enc, dec, "pw") == Mode.WHOLE
    assert dec.read_bytes() == b"small secret"


def test_large_file_uses_streaming_mode(large_file, tmp_path, config):
    enc = tmp_path / "blob.bin.enc"
    assert encrypt_file(large_file, enc, "pw", config) == Mode.STREAMING

    dec = tmp_path / "blob.out"
    assert decrypt_file(enc, dec, "pw") == Mode.STREAMING
    assert dec.read_bytes() == large_file.read_bytes()


def test_streaming_can_be_forced(small_file, tmp_path, config):
    enc = tmp_path / "forced.enc"
    assert encrypt_file(small_file, enc, "pw", config, streaming=True) == Mode.STREAMING
    assert read_file_mode(enc) == Mode.STREAMING


def test_whole_mode_can_be_forced(large_file, tmp_path, config):
    enc = tmp_path / "forced.enc"
    assert encrypt_file(large_file, enc, "pw", config, streaming=False) == Mode.WHOLE


def test_wrong_password_leaves_no_output(large_file, tmp_path, config):
    enc = tmp_path / "blob.bin.enc"
    encrypt_file(large_file, enc, "pw", config)
    dec = tmp_path / "blob.out"
    with pytest.raises(AuthenticationError):
        decrypt_file(enc, dec, "nope")
    assert not dec.exists()
    assert _leftovers(tmp_path) == []


def test_truncated_stream_leaves_no_partial_plaintext(large_file, tmp_path, config):
    enc = tmp_path / "blob.bin.enc"
    encrypt_file(large_file, enc, "pw", config, streaming=True)
    data = enc.read_bytes()
    enc.write_bytes(data[:-200])

    dec = tmp_path / "blob.out"
    with pytest.raises(TruncationError):
        decrypt_file(enc, dec, "pw")
    assert not dec.exists()
    assert _leftovers(tmp_path) == []


def test_failed_decrypt_keeps_existing_output(small_file, tmp_path, config):
    enc = tmp_path / "notes.txt.enc"
    encrypt_file(small_file, enc, "pw", config)
    dec = tmp_path / "notes.txt"
    with pytest.raises(AuthenticationError):
        decrypt_file(enc, dec, "nope")
    assert dec.read_bytes() == b"small secret"


def test_progress_reported_per_chunk_in_streaming_mode(large_file, tmp_path, config):
    enc = tmp_path / "blob.bin.enc"
    encrypted = []
    encrypt_file(large_file, enc, "pw", config, progress=lambda s: encrypted.append(s.plaintext_bytes))
    assert len(encrypted) == 10
    assert encrypted[-1] == 10_000

    decrypted = []
    decrypt_file(enc, tmp_path / "blob.out", "pw", progress=lambda s: decrypted.append(s.container_bytes))
    assert len(decrypted) == 10
    assert decrypted[-1] == enc.stat().st_size


def test_progress_not_called_in_whole_mode(small_file, tmp_path, config):
    calls = []
    enc = tmp_path / "notes.txt.enc"
    encrypt_file(small_file, enc, "pw", config, progress=calls.append)
    decrypt_file(enc, tmp_path / "notes.out", "pw", progress=calls.append)
    assert calls == []


def test_decrypt_file_memory_ceiling(small_file, tmp_path, config):
    enc = tmp_path / "notes.txt.enc"
    encrypt_file(small_file, enc, "pw", config)
    dec = tmp_path / "notes.out"
    with pytest.raises(FormatError, match="exceeds"):
        decrypt_file(enc, dec, "pw", max_memory_cost_kib=32)
    assert not dec.exists()
