"""mender_artifact: versioned update-artifact container codec and tooling.

Packs one or more update payloads, integrity metadata, optional state
scripts and an optional Ed25519 signature into a streaming tar-based
container; reads and verifies such containers; and repacks existing
artifacts with a new payload, name or signing key.
"""

__version__ = "0.1.0"
__description__ = "Update artifact container codec with signing and repack support"

from mender_artifact.core.errors import (
    AlreadySigned,
    ArtifactError,
    ChecksumMismatch,
    FormatError,
    InvalidScriptName,
    RepackError,
    SignatureError,
    SignatureValidationError,
    UnsignableVersion,
    UnsupportedPayloadType,
    VersionConstraintViolation,
)
from mender_artifact.core.reader import ArtifactReader, ReaderState
from mender_artifact.core.repack import repack, sign_artifact, unpack_payload
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.validate import read_artifact, validate
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers import HandlerRegistry, RootfsV1, RootfsV2, new_rootfs

__all__ = [
    "__version__",
    # codec
    "ArtifactReader",
    "ArtifactWriter",
    "ReaderState",
    "HandlerRegistry",
    "RootfsV1",
    "RootfsV2",
    "new_rootfs",
    "Scripts",
    # operations
    "read_artifact",
    "validate",
    "repack",
    "sign_artifact",
    "unpack_payload",
    # errors
    "ArtifactError",
    "FormatError",
    "ChecksumMismatch",
    "UnsupportedPayloadType",
    "InvalidScriptName",
    "VersionConstraintViolation",
    "UnsignableVersion",
    "AlreadySigned",
    "SignatureError",
    "SignatureValidationError",
    "RepackError",
]
