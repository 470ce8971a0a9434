"""``mender-artifact keygen`` — create an Ed25519 key-pair for signing."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from mender_artifact.bridge.crypto_bridge import key_fingerprint, write_keypair
from mender_artifact.cli.commands._common import console, fail


def keygen_cmd(
    output_prefix: Path = typer.Option(
        Path("artifact"),
        "--output-prefix",
        "-o",
        help="Key files are written to PREFIX.key (private) and PREFIX.pub (public).",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing key files."),
) -> None:
    """Generate a signing key-pair."""
    targets = [output_prefix.with_name(output_prefix.name + s) for s in (".key", ".pub")]
    existing = [t for t in targets if t.exists()]
    if existing and not force:
        fail("Refusing to overwrite existing key file:", existing[0])

    try:
        priv_path, pub_path = write_keypair(output_prefix)
    except OSError as exc:
        fail("Can not write key files:", exc)

    pub = pub_path.read_text(encoding="ascii").strip()
    console.print(
        Panel(
            "\n".join([
                f"[bold]Private key:[/bold] {priv_path}",
                f"[bold]Public key:[/bold]  {pub_path}",
                f"[bold]Fingerprint:[/bold] {key_fingerprint(pub)}",
            ]),
            title="[bold green]Key-pair generated[/bold green]",
            border_style="green",
        )
    )
