"""Argon2id key derivation for mycrypt containers."""
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Union

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from mycrypt.core.exceptions import ParameterError, ResourceError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
SALT_LENGTH = 16
MIN_SALT_LENGTH = 16
MAX_SALT_LENGTH = 255  # salt_len is a single header byte

MIN_TIME_COST = 1
MAX_TIME_COST = 100
MIN_PARALLELISM = 1
MAX_PARALLELISM = 255
MAX_MEMORY_COST_KIB = 4 * 1024 * 1024  # 4 GiB

DEFAULT_MEMORY_COST_KIB = 65536
DEFAULT_TIME_COST = 3
DEFAULT_PARALLELISM = 4


@dataclass(frozen=True)
class DerivationParams:
    """Argon2id cost parameters, stored in every container header."""

    memory_cost_kib: int = DEFAULT_MEMORY_COST_KIB
    time_cost: int = DEFAULT_TIME_COST
    parallelism: int = DEFAULT_PARALLELISM

    @property
    def key_length(self) -> int:
        return KEY_LENGTH

    def validate(self) -> "DerivationParams":
        """Raise ParameterError unless every field is within the supported range."""
        for name in ("memory_cost_kib", "time_cost", "parallelism"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ParameterError(f"{name} must be an integer")

        if not MIN_PARALLELISM <= self.parallelism <= MAX_PARALLELISM:
            raise ParameterError(
                f"parallelism must be between {MIN_PARALLELISM} and {MAX_PARALLELISM}"
            )
        if not MIN_TIME_COST <= self.time_cost <= MAX_TIME_COST:
            raise ParameterError(
                f"time_cost must be between {MIN_TIME_COST} and {MAX_TIME_COST}"
            )
        min_memory = 8 * self.parallelism
        if not min_memory <= self.memory_cost_kib <= MAX_MEMORY_COST_KIB:
            raise ParameterError(
                f"memory_cost_kib must be between {min_memory} and {MAX_MEMORY_COST_KIB} "
                f"for parallelism={self.parallelism}"
            )
        return self


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    if not MIN_SALT_LENGTH <= length <= MAX_SALT_LENGTH:
        raise ParameterError(
            f"salt length must be between {MIN_SALT_LENGTH} and {MAX_SALT_LENGTH} bytes"
        )
    return os.urandom(length)


def _encode_passphrase(passphrase: Union[str, bytes]) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def derive_key(
    passphrase: Union[str, bytes],
    salt: bytes,
    params: DerivationParams,
) -> bytes:
    """
    Derive a 32-byte key from a passphrase using Argon2id.

    Salt and parameters are checked before Argon2 runs so that absurd
    values never reach the expensive part. Argon2 allocates
    ``params.memory_cost_kib`` KiB while it runs.

    Raises:
        ParameterError: salt or params out of range.
        ResourceError: the requested memory could not be allocated.
    """
    if not MIN_SALT_LENGTH <= len(salt) <= MAX_SALT_LENGTH:
        raise ParameterError(
            f"salt length must be between {MIN_SALT_LENGTH} and {MAX_SALT_LENGTH} bytes"
        )
    params.validate()

    logger.debug(
        "deriving key: memory=%d KiB time=%d parallelism=%d",
        params.memory_cost_kib,
        params.time_cost,
        params.parallelism,
    )
    try:
        return hash_secret_raw(
            secret=_encode_passphrase(passphrase),
            salt=bytes(salt),
            time_cost=params.time_cost,
            memory_cost=params.memory_cost_kib,
            parallelism=params.parallelism,
            hash_len=KEY_LENGTH,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
    except MemoryError as e:
        raise ResourceError(
            f"cannot allocate {params.memory_cost_kib} KiB for key derivation"
        ) from e
    except HashingError as e:
        if "memory allocation" in str(e).lower():
            raise ResourceError(
                f"cannot allocate {params.memory_cost_kib} KiB for key derivation"
            ) from e
        raise ParameterError(f"key derivation rejected parameters: {e}") from e


def wipe(buffer: bytearray) -> None:
    """Overwrite a mutable secret buffer with zeros (best-effort)."""
    for i in range(len(buffer)):
        buffer[i] = 0


@contextmanager
def derived_key(
    passphrase: Union[str, bytes],
    salt: bytes,
    params: DerivationParams,
) -> Iterator[bytearray]:
    """Yield a derived key that is zeroed when the block exits, on every path."""
    key = bytearray(derive_key(passphrase, salt, params))
    try:
        yield key
    finally:
        wipe(key)


def kdf_params_to_dict(salt: bytes, params: DerivationParams) -> Dict:
    return {
        "algo": "argon2id",
        "salt": salt.hex(),
        "time": params.time_cost,
        "memory": params.memory_cost_kib,
        "parallelism": params.parallelism,
    }
