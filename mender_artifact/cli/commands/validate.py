"""``mender-artifact validate PATH`` — check structure and signature.

Exit status 0 only for a well-formed artifact whose signature (if any)
verified.  A well-formed artifact with a bad or unverifiable signature
still exits 1, with its own message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from mender_artifact.bridge.crypto_bridge import load_verifier
from mender_artifact.cli.commands._common import console, fail, settings_from
from mender_artifact.core.errors import ArtifactError, SignatureValidationError
from mender_artifact.core.validate import validate


def validate_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Artifact file to validate."),
    key: Optional[Path] = typer.Option(
        None, "--key", "-k", help="Public key used to verify the artifact signature."
    ),
) -> None:
    """Validate an artifact file."""
    settings = settings_from(ctx)
    try:
        verifier = load_verifier(key) if key is not None else None
        with path.open("rb") as fh:
            validate(fh, verifier, format_name=settings.format_name)
    except SignatureValidationError as exc:
        fail(f"Artifact file '{path}' formatted correctly, but error validating signature:",
             (exc.signature.detail or exc.signature.describe()) if exc.signature else exc)
    except ArtifactError as exc:
        fail(f"Artifact file '{path}' is invalid:", exc)
    except OSError as exc:
        fail("Can not open artifact:", exc)

    console.print(f"Artifact file '{path}' validated successfully", markup=False)
