"""Main Typer application — imports and registers all CLI commands.

Entry point: ``mender-artifact`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from mender_artifact.cli.commands.keygen import keygen_cmd
from mender_artifact.cli.commands.modify import modify_cmd
from mender_artifact.cli.commands.read import read_cmd
from mender_artifact.cli.commands.sign import sign_cmd
from mender_artifact.cli.commands.validate import validate_cmd
from mender_artifact.cli.commands.write import write_app
from mender_artifact.config import load_settings

app = typer.Typer(
    name="mender-artifact",
    help="Mender artifact read/writer.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _configure_logging(level: str) -> None:
    pkg_logger = logging.getLogger("mender_artifact")
    pkg_logger.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in pkg_logger.handlers):
        pkg_logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
        )


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr."),
) -> None:
    """Resolve settings and logging once per invocation."""
    settings = load_settings()
    _configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


# Register subcommands
app.add_typer(write_app, name="write")
app.command(name="read", help="Reads artifact file.")(read_cmd)
app.command(name="validate", help="Validates artifact file.")(validate_cmd)
app.command(name="sign", help="Signs existing artifact file.")(sign_cmd)
app.command(name="modify", help="Modifies image or artifact file.")(modify_cmd)
app.command(name="keygen", help="Generates a signing key-pair.")(keygen_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
