"""On-disk layout: member names, the version record and per-version rules.

Outer container (uncompressed tar, strictly in this order)::

    version                 {"format": "mender", "version": N}
    manifest                v2 only: "<sha256>  <path>" lines
    manifest.sig            v2 only, optional: signature over manifest
    header.tar.gz           header-info, scripts/*, headers/NNNN/*
    data/0000.tar.gz        one data archive per payload, in header order
    ...

The version-specific differences are captured once, in a ``Layout``
chosen from the version record; decoding code never branches on the
version number itself.
"""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from mender_artifact.core.errors import ChecksumMismatch, FormatError
from mender_artifact.core.hasher import canonical_json_bytes
from mender_artifact.models.artifact import FORMAT_NAME, SUPPORTED_VERSIONS, ArtifactInfo
from mender_artifact.models.manifest import Manifest

VERSION_MEMBER = "version"
MANIFEST_MEMBER = "manifest"
SIGNATURE_MEMBER = "manifest.sig"
HEADER_MEMBER = "header.tar.gz"
HEADER_INFO = "header-info"
SCRIPTS_DIR = "scripts/"

_DATA_MEMBER = re.compile(r"^data/(\d{4})\.tar(\.gz)?$")
_PAYLOAD_HEADER = re.compile(r"^headers/(\d{4})/(.+)$")
_CHECKSUM_RECORD = re.compile(r"^checksums/(.+)\.sha256sum$")


def data_member_name(index: int, compress: bool = True) -> str:
    return f"data/{index:04d}.tar.gz" if compress else f"data/{index:04d}.tar"


def parse_data_member(name: str) -> tuple[int, bool] | None:
    """Return ``(index, compressed)`` for a data archive member name."""
    match = _DATA_MEMBER.match(name)
    if match is None:
        return None
    return int(match.group(1)), match.group(2) is not None


def data_file_path(index: int, name: str) -> str:
    """Manifest path of one payload file."""
    return f"data/{index:04d}/{name}"


def is_plain_name(name: str) -> bool:
    """True when *name* is a single, non-empty path component."""
    return bool(name) and name not in (".", "..") and not any(c in name for c in "/\\\x00")


def payload_header_prefix(index: int) -> str:
    return f"headers/{index:04d}/"


def parse_payload_header(name: str) -> tuple[int, str] | None:
    match = _PAYLOAD_HEADER.match(name)
    if match is None:
        return None
    return int(match.group(1)), match.group(2)


# ---------------------------------------------------------------------------
# Version record
# ---------------------------------------------------------------------------


def encode_version(info: ArtifactInfo) -> bytes:
    return canonical_json_bytes({"format": info.format, "version": info.version})


def decode_version(raw: bytes, format_name: str = FORMAT_NAME) -> ArtifactInfo:
    """Parse the version record, rejecting unknown formats and versions."""
    try:
        record = json.loads(raw)
        if not isinstance(record, dict) or not {"format", "version"} <= record.keys():
            raise ValueError("expected 'format' and 'version' keys")
        info = ArtifactInfo.model_validate(record, strict=True)
    except (ValueError, ValidationError) as exc:
        raise FormatError(f"malformed version record: {exc}") from exc
    if info.format != format_name:
        raise FormatError(f"unsupported artifact format: {info.format!r}")
    if info.version not in SUPPORTED_VERSIONS:
        raise FormatError(f"unsupported artifact version: {info.version}")
    return info


# ---------------------------------------------------------------------------
# Per-version layouts
# ---------------------------------------------------------------------------


class Layout:
    """Rules that differ between format versions."""

    version: int = 0
    has_manifest: bool = False
    supports_scripts: bool = False
    supports_signature: bool = False

    def accept_header_record(self, index: int, relpath: str, data: bytes) -> bool:
        """Consume a version-specific ``headers/NNNN/<relpath>`` record.

        Returns ``False`` when the record is not one this layout owns.
        """
        return False

    def expected_checksum(self, index: int, name: str) -> str:
        raise NotImplementedError

    def check_member(self, path: str, digest: str) -> None:
        """Check the digest of an outer member against integrity metadata."""

    def check_complete(self, consumed: set[str]) -> None:
        """Called once all data archives are read, with every data file path seen."""


class LayoutV1(Layout):
    """Checksums travel inside the header archive; no manifest, no signature."""

    version = 1

    def __init__(self) -> None:
        self._checksums: dict[tuple[int, str], str] = {}

    def accept_header_record(self, index: int, relpath: str, data: bytes) -> bool:
        match = _CHECKSUM_RECORD.match(relpath)
        if match is None:
            return False
        digest = data.decode("ascii", errors="replace").strip().split(" ")[0]
        if not re.fullmatch(r"[0-9a-f]{64}", digest):
            raise FormatError(f"malformed checksum record: headers/{index:04d}/{relpath}")
        self._checksums[(index, match.group(1))] = digest
        return True

    def expected_checksum(self, index: int, name: str) -> str:
        try:
            return self._checksums[(index, name)]
        except KeyError:
            raise FormatError(f"no checksum recorded for data file '{name}'") from None


class LayoutV2(Layout):
    """Checksums for every member and data file live in the manifest."""

    version = 2
    has_manifest = True
    supports_scripts = True
    supports_signature = True

    def __init__(self) -> None:
        self.manifest: Manifest | None = None

    def _require_manifest(self) -> Manifest:
        if self.manifest is None:
            raise FormatError("manifest missing")
        return self.manifest

    def expected_checksum(self, index: int, name: str) -> str:
        path = data_file_path(index, name)
        digest = self._require_manifest().get(path)
        if digest is None:
            raise FormatError(f"data file '{path}' not listed in manifest")
        return digest

    def check_member(self, path: str, digest: str) -> None:
        expected = self._require_manifest().get(path)
        if expected is None:
            raise FormatError(f"member '{path}' not listed in manifest")
        if expected != digest:
            raise ChecksumMismatch(path, expected, digest)

    def check_complete(self, consumed: set[str]) -> None:
        listed = {p for p in self._require_manifest().entries if p.startswith("data/")}
        missing = sorted(listed - consumed)
        if missing:
            raise FormatError(f"manifest lists data files never delivered: {', '.join(missing)}")


def layout_for(version: int) -> Layout:
    if version == 1:
        return LayoutV1()
    if version == 2:
        return LayoutV2()
    raise FormatError(f"unsupported artifact version: {version}")
