"""
Runtime configuration for mycrypt.

A CryptConfig is built once by the front-end and passed explicitly to
every operation that needs it; nothing here is cached at module level.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from mycrypt.core.exceptions import ParameterError
from mycrypt.security.container import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_MEMORY_COST_KIB,
    validate_chunk_size,
)
from mycrypt.security.crypto import OutputFormat
from mycrypt.security.kdf import DerivationParams

DEFAULT_PASSWORD_ENV = "MYCRYPT_PASSWORD"
# files larger than this are encrypted in streaming mode unless told otherwise
DEFAULT_STREAMING_THRESHOLD = 64 * 1024 * 1024


@dataclass(frozen=True)
class CryptConfig:
    params: DerivationParams = field(default_factory=DerivationParams)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    streaming_threshold: int = DEFAULT_STREAMING_THRESHOLD
    output_format: OutputFormat = OutputFormat.BASE64
    password_env: Optional[str] = DEFAULT_PASSWORD_ENV
    # decryption refuses containers whose KDF needs more memory than this
    max_memory_cost_kib: int = DEFAULT_MAX_MEMORY_COST_KIB

    def validate(self) -> "CryptConfig":
        self.params.validate()
        validate_chunk_size(self.chunk_size)
        if self.streaming_threshold < 0:
            raise ParameterError("streaming_threshold must not be negative")
        if self.max_memory_cost_kib < 1:
            raise ParameterError("max_memory_cost_kib must be positive")
        return self

    def with_overrides(self, **overrides: Any) -> "CryptConfig":
        """
        Return a copy with the given fields replaced; ``None`` values are ignored.

        KDF fields (``memory_cost_kib``, ``time_cost``, ``parallelism``) are
        applied to ``params``; everything else to the config itself.
        """
        param_fields = {"memory_cost_kib", "time_cost", "parallelism"}
        param_changes: Dict[str, Any] = {}
        config_changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key in param_fields:
                param_changes[key] = value
            elif key == "output_format":
                try:
                    config_changes[key] = OutputFormat(value)
                except ValueError:
                    raise ParameterError(f"unknown output format {value!r}") from None
            else:
                config_changes[key] = value

        if param_changes:
            config_changes["params"] = replace(self.params, **param_changes)
        return replace(self, **config_changes).validate()
