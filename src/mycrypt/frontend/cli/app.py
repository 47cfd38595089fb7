"""Command-line front-end for mycrypt.

Start here with `python -m mycrypt.frontend.cli.app --help`
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional, TextIO

from mycrypt.core.exceptions import MyCryptError
from mycrypt.core.file_ops import decrypt_file, determine_output_path, encrypt_file
from mycrypt.frontend.cli.context import AppContext, build_context, resolve_password
from mycrypt.frontend.cli.logging_config import configure_logging
from mycrypt.security.container import read_header
from mycrypt.security.crypto import decrypt_string, encrypt_string
from mycrypt.security.kdf import kdf_params_to_dict
from mycrypt.security.streaming import StreamStats

logger = logging.getLogger(__name__)


def _read_text(text: Optional[str]) -> str:
    # Fall back to stdin so tokens can be piped in.
    if text is not None:
        return text
    data = sys.stdin.read()
    if data.endswith("\n"):
        data = data[:-1]
    return data


class ProgressReporter:
    """Draws a one-line byte counter on stderr while a file is streamed."""

    def __init__(self, label: str, total: int, counter: str, stream: Optional[TextIO] = None):
        self.label = label
        self.total = total
        self.counter = counter
        self.stream = stream if stream is not None else sys.stderr
        self.updates = 0

    def __call__(self, stats: StreamStats) -> None:
        done = getattr(stats, self.counter)
        percent = 100 * done // self.total if self.total else 100
        self.stream.write(f"\r{self.label}: {done}/{self.total} bytes ({percent}%)")
        self.stream.flush()
        self.updates += 1

    def finish(self) -> None:
        if self.updates:
            self.stream.write("\n")
            self.stream.flush()


def _emit(text: str, no_newline: bool) -> None:
    print(text, end="" if no_newline else "\n")


def cmd_encrypt(args: argparse.Namespace, ctx: AppContext) -> int:
    text = _read_text(args.text)
    password = resolve_password(ctx.config, confirm=True)
    token = encrypt_string(text, password, ctx.config.params, ctx.config.output_format)
    _emit(token, args.no_newline)
    return 0


def cmd_decrypt(args: argparse.Namespace, ctx: AppContext) -> int:
    token = _read_text(args.text)
    password = resolve_password(ctx.config)
    _emit(decrypt_string(token, password, ctx.config.max_memory_cost_kib), args.no_newline)
    return 0


def cmd_encrypt_file(args: argparse.Namespace, ctx: AppContext) -> int:
    output = determine_output_path(args.input, args.output, encrypt=True)
    password = resolve_password(ctx.config, confirm=True)
    progress = ProgressReporter("Encrypting", os.path.getsize(args.input), "plaintext_bytes")
    try:
        mode = encrypt_file(
            args.input, output, password, ctx.config, streaming=args.streaming, progress=progress
        )
    finally:
        progress.finish()
    print(f"Encrypted {args.input} -> {output} ({mode.name.lower()} mode)")
    return 0


def cmd_decrypt_file(args: argparse.Namespace, ctx: AppContext) -> int:
    output = determine_output_path(args.input, args.output, encrypt=False)
    password = resolve_password(ctx.config)
    progress = ProgressReporter("Decrypting", os.path.getsize(args.input), "container_bytes")
    try:
        mode = decrypt_file(
            args.input,
            output,
            password,
            progress=progress,
            max_memory_cost_kib=ctx.config.max_memory_cost_kib,
        )
    finally:
        progress.finish()
    print(f"Decrypted {args.input} -> {output} ({mode.name.lower()} mode)")
    return 0


def cmd_inspect(args: argparse.Namespace, ctx: AppContext) -> int:
    with open(args.input, "rb") as f:
        header = read_header(f, ctx.config.max_memory_cost_kib)
    info = {
        "mode": header.mode.name.lower(),
        "kdf": kdf_params_to_dict(header.salt, header.params),
        "nonce": header.base_nonce.hex(),
    }
    if header.chunk_size is not None:
        info["chunk_size"] = header.chunk_size
    print(json.dumps(info, indent=2))
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Log progress details")
    common.add_argument(
        "--password-env",
        default=None,
        help="Environment variable holding the password (default: MYCRYPT_PASSWORD)",
    )
    common.add_argument("--memory-cost", type=int, default=None, help="Argon2 memory cost in KiB")
    common.add_argument("--time-cost", type=int, default=None, help="Argon2 iterations")
    common.add_argument("--parallelism", type=int, default=None, help="Argon2 lanes")
    common.add_argument(
        "--max-memory-cost",
        type=int,
        default=None,
        help="Refuse to decrypt containers needing more Argon2 memory than this (KiB, default: 1 GiB)",
    )
    common.add_argument(
        "--chunk-size", type=int, default=None, help="Streaming chunk size in bytes"
    )
    common.add_argument(
        "--format",
        choices=["base64", "hex"],
        default=None,
        help="Text encoding for encrypted strings (default: base64)",
    )

    parser = argparse.ArgumentParser(
        prog="mycrypt",
        description="Password-based AES-256-GCM encryption with Argon2id key derivation.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("encrypt", parents=[common], help="Encrypt a string")
    p.add_argument("-t", "--text", default=None, help="Text to encrypt (default: stdin)")
    p.add_argument("-n", "--no-newline", action="store_true", help="Do not print a trailing newline")
    p.set_defaults(func=cmd_encrypt)

    p = sub.add_parser("decrypt", parents=[common], help="Decrypt a string token")
    p.add_argument("-t", "--text", default=None, help="Token to decrypt (default: stdin)")
    p.add_argument("-n", "--no-newline", action="store_true", help="Do not print a trailing newline")
    p.set_defaults(func=cmd_decrypt)

    p = sub.add_parser("encrypt-file", parents=[common], help="Encrypt a file")
    p.add_argument("-i", "--input", required=True, help="File to encrypt")
    p.add_argument("-o", "--output", default=None, help="Output path (default: <input>.enc)")
    p.add_argument(
        "--streaming",
        action="store_true",
        default=None,
        help="Force chunked streaming mode (default: chosen by file size)",
    )
    p.set_defaults(func=cmd_encrypt_file)

    p = sub.add_parser("decrypt-file", parents=[common], help="Decrypt a file")
    p.add_argument("-i", "--input", required=True, help="File to decrypt")
    p.add_argument(
        "-o", "--output", default=None, help="Output path (default: input without .enc)"
    )
    p.set_defaults(func=cmd_decrypt_file)

    p = sub.add_parser("inspect", parents=[common], help="Show a container's header")
    p.add_argument("-i", "--input", required=True, help="Encrypted file")
    p.set_defaults(func=cmd_inspect)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    logger.debug("running %s", args.command)

    try:
        ctx = build_context(args)
        return args.func(args, ctx)
    except (MyCryptError, OSError) as e:
        # Messages never carry secrets; authentication failures stay generic.
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
