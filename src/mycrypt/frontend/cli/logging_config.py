"""Logging setup for the mycrypt command line.

stdout is reserved for tokens, plaintext and inspect output so it can be
piped; log records and progress therefore go to stderr. ``-v`` lowers the
level to DEBUG to show per-stream chunk counts from the security modules.
"""

import logging
import sys


def configure_logging(level: int = logging.WARNING) -> None:
    # basicConfig is a no-op after the first call, so repeated main() runs keep one handler
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
