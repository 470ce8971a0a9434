"""``mender-artifact modify PATH`` — edit an artifact or image in place.

Filesystem edits are delegated to an image mounter.  None is built in,
so from the command line only the artifact name (and signing key) of an
artifact can be changed unless a mounter is supplied programmatically.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from mender_artifact.bridge.crypto_bridge import load_signer
from mender_artifact.cli.commands._common import console, fail, settings_from
from mender_artifact.core.errors import ArtifactError
from mender_artifact.core.modify import ImageMounter, ModifyRequest, modify_artifact

# Set by embedding applications that can mount images.
image_mounter: ImageMounter | None = None


def modify_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Artifact or image file to modify."),
    key: Optional[Path] = typer.Option(
        None, "--key", "-k", help="Private key used to sign the artifact after modifying."
    ),
    server_uri: Optional[str] = typer.Option(
        None, "--server-uri", "-u", help="Server URI that replaces the default one."
    ),
    server_cert: Optional[Path] = typer.Option(
        None, "--server-cert", "-c", help="Certificate used by the client to validate the server."
    ),
    verification_key: Optional[Path] = typer.Option(
        None, "--verification-key", "-v", help="Public key the client uses to verify artifacts."
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name of the artifact."),
    tenant_token: Optional[Path] = typer.Option(
        None, "--tenant-token", "-t", help="File holding the tenant token to inject."
    ),
) -> None:
    """Modify an existing image or artifact file."""
    settings = settings_from(ctx)
    if not path.exists():
        fail(f"Can not open [{path}] file")
    if name is not None and len(name.split()) != 1:
        fail("whitespace is not allowed in the artifact name")

    request = ModifyRequest(
        name=name,
        server_uri=server_uri,
        server_cert=server_cert,
        verification_key=verification_key,
        tenant_token=tenant_token,
    )
    try:
        signer = load_signer(key) if key is not None else None
        done = modify_artifact(
            path,
            request,
            image_mounter,
            signer,
            compress=settings.compress,
            scratch_dir=settings.scratch_dir,
        )
    except (ArtifactError, OSError) as exc:
        fail("Can not modify artifact:", exc)

    for edit in done:
        console.print(f"  {edit}", markup=False)
    console.print(f"Modified {path}.", markup=False)
