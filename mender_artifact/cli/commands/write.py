"""``mender-artifact write rootfs-image`` — build a new artifact.

The artifact is written to ``<output>.tmp`` and renamed into place only
once it is complete.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from mender_artifact.bridge.crypto_bridge import load_signer
from mender_artifact.cli.commands._common import console, fail, settings_from
from mender_artifact.core.errors import ArtifactError
from mender_artifact.core.output import atomic_output
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers.rootfs import new_rootfs

write_app = typer.Typer(
    name="write",
    help="Writes artifact file.",
    no_args_is_help=True,
    add_completion=False,
)


@write_app.command(name="rootfs-image", help="Write an artifact holding a root filesystem image.")
def write_rootfs_cmd(
    ctx: typer.Context,
    update: Path = typer.Option(..., "--update", "-u", help="Update FILE."),
    device_type: Optional[List[str]] = typer.Option(
        None,
        "--device-type",
        "-t",
        help="Type of device(s) supported by the update. Repeat for multiple devices.",
    ),
    artifact_name: str = typer.Option(..., "--artifact-name", "-n", help="Name of the artifact."),
    output_path: Optional[Path] = typer.Option(
        None, "--output-path", "-o", help="Full path to output artifact file."
    ),
    version: Optional[int] = typer.Option(
        None, "--version", "-v", help="Version of the artifact format."
    ),
    key: Optional[Path] = typer.Option(
        None, "--key", "-k", help="Private key used to sign the artifact."
    ),
    script: Optional[List[Path]] = typer.Option(
        None,
        "--script",
        "-s",
        help="State script file or directory of scripts. Repeat for multiple.",
    ),
) -> None:
    """Write a rootfs-image artifact."""
    settings = settings_from(ctx)
    output = output_path or settings.default_output_path
    version = version if version is not None else settings.default_version

    if not device_type:
        fail("must provide `device-type`, `artifact-name` and `update`")
    if len(artifact_name.split()) > 1:
        fail("whitespace is not allowed in the artifact-name")
    if not update.is_file():
        fail("Can not read update file:", update)

    try:
        handler = new_rootfs(version, update, buffer_size=settings.copy_buffer_size)
        scripts = Scripts()
        scripts.add_paths(list(script or []))
        signer = load_signer(key) if key is not None else None

        with atomic_output(output) as out:
            writer = ArtifactWriter(
                out,
                signer,
                compress=settings.compress,
                scratch_dir=settings.scratch_dir,
            )
            result = writer.write(
                list(device_type),
                artifact_name,
                [handler],
                scripts,
                version=version,
                format_name=settings.format_name,
            )
    except (ArtifactError, OSError) as exc:
        fail("Can not write artifact:", exc)

    console.print(
        f"Artifact '{result.artifact_name}' written to {output} "
        f"(version {result.info.version}, {'signed' if result.signed else 'unsigned'}).",
        markup=False,
    )
