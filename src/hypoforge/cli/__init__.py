"""hypoforge CLI - drive and control hypothesis runs from the shell.

All commands emit JSON envelopes (response-v2) for reliable parsing.
"""

from hypoforge.cli.config import CLIContext, create_context
from hypoforge.cli.logging import cli_command, get_cli_logger
from hypoforge.cli.main import cli
from hypoforge.cli.output import emit, emit_error, emit_success
from hypoforge.cli.registry import get_context

__all__ = [
    # Entry point
    "cli",
    # Context
    "CLIContext",
    "create_context",
    "get_context",
    # Output
    "emit",
    "emit_error",
    "emit_success",
    # Logging
    "cli_command",
    "get_cli_logger",
]
