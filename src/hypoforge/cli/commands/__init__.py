"""CLI commands.

Every command operates on runs; they are registered flat on the root group.
"""

from hypoforge.cli.commands.runs import (
    create_run_cmd,
    nudge_cmd,
    pause_cmd,
    process_cmd,
    recover_cmd,
    resume_cmd,
    serve_cmd,
    status_cmd,
    stop_cmd,
)

__all__ = [
    "create_run_cmd",
    "nudge_cmd",
    "pause_cmd",
    "process_cmd",
    "recover_cmd",
    "resume_cmd",
    "serve_cmd",
    "status_cmd",
    "stop_cmd",
]
