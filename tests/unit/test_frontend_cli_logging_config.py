"""Unit tests for the CLI logging setup."""

import logging
import sys
from unittest.mock import patch

from mycrypt.frontend.cli.logging_config import configure_logging


def test_logs_go_to_stderr_at_warning_by_default():
    with patch("mycrypt.frontend.cli.logging_config.logging.basicConfig") as mock_config:
        configure_logging()
    kwargs = mock_config.call_args.kwargs
    assert kwargs["stream"] is sys.stderr
    assert kwargs["level"] == logging.WARNING


def test_verbose_level_is_passed_through():
    with patch("mycrypt.frontend.cli.logging_config.logging.basicConfig") as mock_config:
        configure_logging(logging.DEBUG)
    assert mock_config.call_args.kwargs["level"] == logging.DEBUG
