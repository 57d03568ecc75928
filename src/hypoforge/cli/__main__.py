"""CLI module entry point.

Enables running the CLI via: python -m hypoforge.cli
"""

from hypoforge.cli.main import cli

if __name__ == "__main__":
    cli()
