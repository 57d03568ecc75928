"""Command registry for the hypoforge CLI."""

import click

from hypoforge.cli.config import CLIContext


def get_context(ctx: click.Context) -> CLIContext:
    """Return the CLIContext the root group stored on ``ctx.obj``."""
    root = ctx.find_root()
    if not root.obj or "cli_context" not in root.obj:
        raise click.UsageError("CLI context not initialised; invoke commands through `hypoforge`.")
    return root.obj["cli_context"]


def register_all_commands(cli: click.Group) -> None:
    """Attach the run commands to the root group.

    Commands are imported lazily so ``hypoforge.cli.commands`` can import
    from this module.
    """
    from hypoforge.cli.commands import (
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

    for command in (
        create_run_cmd,
        process_cmd,
        status_cmd,
        pause_cmd,
        resume_cmd,
        stop_cmd,
        nudge_cmd,
        recover_cmd,
        serve_cmd,
    ):
        cli.add_command(command)
