"""``mender-artifact read PATH`` — describe an artifact.

The whole artifact is always parsed; a failed signature check is shown
in the ``Signature`` line rather than aborting the listing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from mender_artifact.bridge.crypto_bridge import load_verifier
from mender_artifact.cli.commands._common import console, err_console, fail, settings_from
from mender_artifact.core.errors import ArtifactError
from mender_artifact.core.validate import read_artifact
from mender_artifact.models.artifact import ReadResult, SignatureStatus


def render(result: ReadResult) -> list[str]:
    """Plain-text listing of a read result."""
    lines = [
        "Mender artifact:",
        f"  Name: {result.artifact_name}",
        f"  Format: {result.info.format}",
        f"  Version: {result.info.version}",
        f"  Signature: {result.signature.describe()}",
        f"  Compatible devices: '[{' '.join(result.device_types)}]'",
    ]
    if result.scripts:
        lines.append("  State scripts:")
        lines.extend(f"    {name}" for name in result.scripts)
    lines.append("")
    lines.append("Updates:")
    for index, payload in enumerate(result.payloads):
        lines.append(f"  {index:04d}:")
        lines.append(f"    Type:   {payload.type_tag}")
        for data_file in payload.files:
            lines.extend([
                "    Files:",
                f"      name:     {data_file.name}",
                f"      size:     {data_file.size}",
                f"      modified: {data_file.modified.isoformat()}",
                f"      checksum: {data_file.checksum}",
            ])
    return lines


def read_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Artifact file to read."),
    key: Optional[Path] = typer.Option(
        None, "--key", "-k", help="Public key used to verify the artifact signature."
    ),
) -> None:
    """Read and describe an artifact file."""
    settings = settings_from(ctx)
    try:
        verifier = load_verifier(key) if key is not None else None
        with path.open("rb") as fh:
            result = read_artifact(
                fh,
                verifier,
                format_name=settings.format_name,
                buffer_size=settings.copy_buffer_size,
            )
    except ArtifactError as exc:
        if exc.signature is not None and exc.signature.status != SignatureStatus.NOT_SIGNED:
            err_console.print(f"Signature: {exc.signature.describe()}", markup=False)
        fail("Can not read artifact:", exc)
    except OSError as exc:
        fail(f"Can not open '{path}' file:", exc)

    for line in render(result):
        console.print(line, markup=False)
