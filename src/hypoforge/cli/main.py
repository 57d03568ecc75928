"""hypoforge CLI entry point."""

from typing import Optional

import click

from hypoforge.cli.config import create_context
from hypoforge.cli.registry import register_all_commands


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="HYPOFORGE_CONFIG_FILE",
    type=click.Path(exists=False),
    help="Path to a hypoforge TOML config file.",
)
@click.option(
    "--storage-dir",
    envvar="HYPOFORGE_STORAGE_DIR",
    type=click.Path(exists=False),
    help="Override the run storage directory.",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], storage_dir: Optional[str]) -> None:
    """hypoforge - resumable hypothesis pipeline orchestrator.

    All commands output JSON envelopes.
    """
    ctx.ensure_object(dict)
    ctx.obj["cli_context"] = create_context(config_file=config_file, storage_dir=storage_dir)


# Register all commands
register_all_commands(cli)


if __name__ == "__main__":
    cli()
