"""Artifact value models — frozen, live for one read, write or repack."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from mender_artifact.models.manifest import Manifest

FORMAT_NAME = "mender"
LATEST_FORMAT_VERSION = 2
SUPPORTED_VERSIONS: frozenset[int] = frozenset({1, 2})


class ArtifactInfo(BaseModel):
    """Contents of the ``version`` framing record."""

    model_config = ConfigDict(frozen=True)

    format: str = FORMAT_NAME
    version: int = LATEST_FORMAT_VERSION


class DataFile(BaseModel):
    """One file of a payload, as recorded in the header and data archive."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int = 0
    modified: datetime = Field(
        default_factory=lambda: datetime.fromtimestamp(0, timezone.utc)
    )
    checksum: str = ""  # sha256 hex


class Payload(BaseModel):
    """One update unit inside an artifact."""

    model_config = ConfigDict(frozen=True)

    type_tag: str
    files: list[DataFile]


class UpdateType(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str


class HeaderInfo(BaseModel):
    """The ``header-info`` record at the top of the header archive."""

    model_config = ConfigDict(frozen=True)

    updates: list[UpdateType]
    device_types_compatible: list[str]
    artifact_name: str


class SignatureStatus(str, Enum):
    """Outcome of the deferred signature check."""

    NOT_SIGNED = "not_signed"
    UNVERIFIABLE = "unverifiable"
    INVALID = "invalid"
    VERIFIED = "verified"


_STATUS_TEXT: dict[SignatureStatus, str] = {
    SignatureStatus.NOT_SIGNED: "no signature",
    SignatureStatus.UNVERIFIABLE: (
        "signed but no key for verification provided; "
        "please use `-k` option for providing verification key"
    ),
    SignatureStatus.INVALID: "signed; verification using provided key failed",
    SignatureStatus.VERIFIED: "signed and verified correctly",
}


class SignatureOutcome(BaseModel):
    """Signature result reported independently of the structural result."""

    model_config = ConfigDict(frozen=True)

    status: SignatureStatus = SignatureStatus.NOT_SIGNED
    detail: str = ""

    @property
    def ok(self) -> bool:
        """Whether the outcome is acceptable to a strict caller."""
        return self.status in (SignatureStatus.NOT_SIGNED, SignatureStatus.VERIFIED)

    def describe(self) -> str:
        return _STATUS_TEXT[self.status]


class ReadResult(BaseModel):
    """Everything a completed read exposes."""

    model_config = ConfigDict(frozen=True)

    info: ArtifactInfo
    artifact_name: str
    device_types: list[str]
    payloads: list[Payload] = Field(default_factory=list)
    scripts: list[str] = Field(default_factory=list)
    signed: bool = False
    signature: SignatureOutcome = SignatureOutcome()
    manifest: Manifest | None = None


class WriteResult(BaseModel):
    """Summary of what a writer emitted."""

    model_config = ConfigDict(frozen=True)

    info: ArtifactInfo
    artifact_name: str
    device_types: list[str]
    payloads: list[Payload]
    scripts: list[str] = Field(default_factory=list)
    signed: bool = False
    manifest: Manifest | None = None
