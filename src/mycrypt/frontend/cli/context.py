"""Small helpers that resolve the runtime inputs the CLI hands to the core."""

from __future__ import annotations

import argparse
import getpass
import os
from dataclasses import dataclass
from typing import Optional

from mycrypt.core.config import CryptConfig
from mycrypt.core.exceptions import PasswordError


@dataclass
class AppContext:
    """Container for what a subcommand needs to run."""

    config: CryptConfig
    verbose: bool = False


def build_config(args: argparse.Namespace, base: Optional[CryptConfig] = None) -> CryptConfig:
    """Apply command-line overrides to ``base`` (defaults when omitted)."""
    base = base or CryptConfig()
    return base.with_overrides(
        memory_cost_kib=getattr(args, "memory_cost", None),
        time_cost=getattr(args, "time_cost", None),
        parallelism=getattr(args, "parallelism", None),
        chunk_size=getattr(args, "chunk_size", None),
        output_format=getattr(args, "format", None),
        password_env=getattr(args, "password_env", None),
        max_memory_cost_kib=getattr(args, "max_memory_cost", None),
    )


def build_context(args: argparse.Namespace) -> AppContext:
    return AppContext(config=build_config(args), verbose=bool(getattr(args, "verbose", False)))


def resolve_password(config: CryptConfig, confirm: bool = False) -> str:
    """
    Return the passphrase for this run.

    - If the environment variable named by ``config.password_env`` is set,
      its value is used as-is.
    - Otherwise the user is prompted (twice when ``confirm`` is true, as
      for encryption, so a typo cannot lock the data away).
    """
    if config.password_env:
        value = os.getenv(config.password_env)
        if value is not None:
            if not value:
                raise PasswordError(f"environment variable {config.password_env} is empty")
            return value

    try:
        password = getpass.getpass("Password: ")
        if confirm:
            again = getpass.getpass("Confirm password: ")
            if again != password:
                raise PasswordError("passwords do not match")
    except (EOFError, KeyboardInterrupt):
        raise PasswordError("no password entered") from None

    if not password:
        raise PasswordError("password must not be empty")
    return password
