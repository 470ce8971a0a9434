"""Shared helpers for CLI commands: console, settings, error exits."""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from mender_artifact.config import ArtifactSettings, load_settings

console = Console(soft_wrap=True, highlight=False, emoji=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False, emoji=False)


def settings_from(ctx: typer.Context) -> ArtifactSettings:
    """Settings resolved by the app callback, or fresh ones when run standalone."""
    if isinstance(ctx.obj, ArtifactSettings):
        return ctx.obj
    settings = load_settings()
    ctx.obj = settings
    return settings


def fail(message: str, detail: object = None) -> NoReturn:
    """Print an error and exit with status 1."""
    text = f"[bold red]{escape(message)}[/bold red]"
    if detail is not None:
        text += f" {escape(str(detail))}"
    err_console.print(text)
    raise typer.Exit(code=1)
