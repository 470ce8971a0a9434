"""Artifact data models — all Pydantic v2, all frozen (immutable)."""

from mender_artifact.models.artifact import (
    FORMAT_NAME,
    LATEST_FORMAT_VERSION,
    SUPPORTED_VERSIONS,
    ArtifactInfo,
    DataFile,
    HeaderInfo,
    Payload,
    ReadResult,
    SignatureOutcome,
    SignatureStatus,
    UpdateType,
    WriteResult,
)
from mender_artifact.models.manifest import Manifest, ManifestParseError

__all__ = [
    # constants
    "FORMAT_NAME",
    "LATEST_FORMAT_VERSION",
    "SUPPORTED_VERSIONS",
    # artifact
    "ArtifactInfo",
    "DataFile",
    "HeaderInfo",
    "Payload",
    "ReadResult",
    "SignatureOutcome",
    "SignatureStatus",
    "UpdateType",
    "WriteResult",
    # manifest
    "Manifest",
    "ManifestParseError",
]
