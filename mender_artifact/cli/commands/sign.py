"""``mender-artifact sign PATH`` — produce a signed copy of an artifact."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from mender_artifact.bridge.crypto_bridge import load_signer
from mender_artifact.cli.commands._common import console, fail, settings_from
from mender_artifact.core.errors import AlreadySigned, ArtifactError, UnsignableVersion
from mender_artifact.core.output import atomic_output
from mender_artifact.core.repack import sign_artifact


def sign_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Artifact file to sign."),
    key: Optional[Path] = typer.Option(
        None, "--key", "-k", help="Private key used to sign the artifact."
    ),
    output_path: Optional[Path] = typer.Option(
        None,
        "--output-path",
        "-o",
        help="Signed artifact file; the input is replaced when omitted.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Re-sign an artifact that is already signed."
    ),
) -> None:
    """Sign an existing artifact file."""
    settings = settings_from(ctx)
    if key is None:
        fail("Missing signing key; please use `-k` parameter for providing one")

    output = output_path or path
    try:
        signer = load_signer(key)
        with path.open("rb") as src, atomic_output(output) as out:
            result = sign_artifact(
                src,
                out,
                signer,
                force=force,
                compress=settings.compress,
                scratch_dir=settings.scratch_dir,
                buffer_size=settings.copy_buffer_size,
            )
    except (UnsignableVersion, AlreadySigned) as exc:
        fail(str(exc))
    except ArtifactError as exc:
        fail("Can not sign artifact:", exc)
    except OSError as exc:
        fail(f"Can not open: {path}", exc)

    console.print(f"Artifact '{result.artifact_name}' signed into {output}.", markup=False)
