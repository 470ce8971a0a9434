"""Read and validate entry points built on ``ArtifactReader``."""

from __future__ import annotations

import logging
from typing import BinaryIO

from mender_artifact.core.errors import SignatureValidationError
from mender_artifact.core.hasher import DEFAULT_BUFFER_SIZE
from mender_artifact.core.reader import ArtifactReader, ScriptFn, Verifier
from mender_artifact.handlers.base import HandlerRegistry
from mender_artifact.handlers.rootfs import rootfs_installer
from mender_artifact.models.artifact import FORMAT_NAME, ReadResult, SignatureStatus

logger = logging.getLogger(__name__)


def default_registry(buffer_size: int = DEFAULT_BUFFER_SIZE) -> HandlerRegistry:
    """Registry that checksums and discards every payload type the tool knows."""
    return HandlerRegistry([rootfs_installer(buffer_size=buffer_size)])


def read_artifact(
    source: BinaryIO,
    verifier: Verifier | None = None,
    *,
    handlers: HandlerRegistry | None = None,
    on_script: ScriptFn | None = None,
    format_name: str = FORMAT_NAME,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ReadResult:
    """Read a whole artifact; the signature outcome is in the result."""
    reader = ArtifactReader(
        source,
        handlers if handlers is not None else default_registry(buffer_size),
        verifier,
        on_script,
        format_name=format_name,
        buffer_size=buffer_size,
    )
    return reader.read()


def validate(
    source: BinaryIO,
    verifier: Verifier | None = None,
    *,
    handlers: HandlerRegistry | None = None,
    format_name: str = FORMAT_NAME,
) -> ReadResult:
    """Check structure and signature.

    Structural problems raise immediately.  A structurally sound artifact
    whose signature is invalid, or signed with no key to check it, raises
    ``SignatureValidationError`` carrying the full ``ReadResult``.
    """
    result = read_artifact(source, verifier, handlers=handlers, format_name=format_name)
    if result.signature.status in (SignatureStatus.INVALID, SignatureStatus.UNVERIFIABLE):
        detail = result.signature.detail or result.signature.describe()
        raise SignatureValidationError(
            "artifact file formatted correctly, but error validating signature: " + detail,
            result,
        )
    logger.info("Artifact '%s' validated.", result.artifact_name)
    return result
