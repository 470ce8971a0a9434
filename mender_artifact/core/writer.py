"""Artifact writer — composes payloads, header, manifest and signature.

Everything is validated before the first byte reaches the sink.  Each
payload's data archive is composed into private scratch storage while
its files are hashed; only then is the outer container streamed, header
first, so a reader can resolve payload types before it meets any data.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import logging
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Protocol

from mender_artifact.core.errors import FormatError, VersionConstraintViolation
from mender_artifact.core.hasher import (
    DEFAULT_BUFFER_SIZE,
    HashingReader,
    canonical_json_bytes,
)
from mender_artifact.core.layout import (
    HEADER_INFO,
    HEADER_MEMBER,
    MANIFEST_MEMBER,
    SCRIPTS_DIR,
    SIGNATURE_MEMBER,
    VERSION_MEMBER,
    data_file_path,
    data_member_name,
    encode_version,
    is_plain_name,
    layout_for,
    payload_header_prefix,
)
from mender_artifact.core.scripts import Scripts, validate_script_name
from mender_artifact.handlers.base import Handler
from mender_artifact.models.artifact import (
    FORMAT_NAME,
    SUPPORTED_VERSIONS,
    ArtifactInfo,
    DataFile,
    HeaderInfo,
    Payload,
    UpdateType,
    WriteResult,
)
from mender_artifact.models.manifest import Manifest

logger = logging.getLogger(__name__)

_TAR_FORMAT = tarfile.GNU_FORMAT


class Signer(Protocol):
    def sign(self, message: bytes) -> bytes: ...


# ---------------------------------------------------------------------------
# Archive helpers
# ---------------------------------------------------------------------------


@contextmanager
def open_archive(path: Path, compress: bool) -> Iterator[tarfile.TarFile]:
    """Open a streaming tar for writing, gzip-wrapped when *compress* is set.

    The gzip header carries no file name and a zero mtime so identical
    content always produces identical bytes.
    """
    with ExitStack() as stack:
        raw = stack.enter_context(path.open("wb"))
        target: BinaryIO = raw
        if compress:
            target = stack.enter_context(
                gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0)
            )
        yield stack.enter_context(
            tarfile.open(fileobj=target, mode="w|", format=_TAR_FORMAT)
        )


def add_bytes(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    info.mtime = 0
    tar.addfile(info, io.BytesIO(data))


def add_file(tar: tarfile.TarFile, name: str, path: Path, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name)
    info.size = path.stat().st_size
    info.mode = mode
    info.mtime = 0
    with path.open("rb") as fh:
        tar.addfile(info, fh)


def file_sha256(path: Path, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        while chunk := fh.read(buffer_size):
            digest.update(chunk)
    return digest.hexdigest()


class DataArchiveSink:
    """Where a handler's ``compose`` streams its files.

    Every file is hashed while it is copied and must deliver exactly the
    size it declares.
    """

    def __init__(self, tar: tarfile.TarFile) -> None:
        self._tar = tar
        self.files: list[DataFile] = []

    def add_file(
        self,
        name: str,
        stream: BinaryIO,
        size: int,
        modified: datetime | None = None,
    ) -> DataFile:
        if not is_plain_name(name):
            raise FormatError(f"invalid data file name: {name!r}")
        if any(f.name == name for f in self.files):
            raise FormatError(f"duplicate data file name: {name}")
        if modified is None:
            modified = datetime.now(timezone.utc).replace(microsecond=0)

        info = tarfile.TarInfo(name)
        info.size = size
        info.mode = 0o644
        info.mtime = int(modified.timestamp())

        reader = HashingReader(stream, limit=size)
        try:
            self._tar.addfile(info, reader)
        except OSError as exc:
            raise FormatError(
                f"short transfer for '{name}': declared {size} bytes, got {reader.bytes_read}"
            ) from exc
        if stream.read(1):
            raise FormatError(f"long transfer for '{name}': more than {size} bytes supplied")

        data_file = DataFile(
            name=name, size=size, modified=modified, checksum=reader.hexdigest()
        )
        self.files.append(data_file)
        return data_file


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class ArtifactWriter:
    """Writes one artifact into *sink*.

    Parameters
    ----------
    sink:
        Binary, write-only stream; it is never seeked.
    signer:
        Optional signing capability applied to the finished manifest.
    compress:
        Gzip the data archives (``data/NNNN.tar.gz``) or store them as
        plain tar (``data/NNNN.tar``).  The header is always gzipped.
    scratch_dir:
        Parent directory for private scratch space; system default if
        ``None``.
    """

    def __init__(
        self,
        sink: BinaryIO,
        signer: Signer | None = None,
        *,
        compress: bool = True,
        scratch_dir: Path | None = None,
    ) -> None:
        self._sink = sink
        self._signer = signer
        self._compress = compress
        self._scratch_dir = scratch_dir
        self._used = False

    @property
    def signed(self) -> bool:
        return self._signer is not None

    def write(
        self,
        device_types: list[str],
        artifact_name: str,
        updates: list[Handler],
        scripts: Scripts | None = None,
        *,
        version: int = 2,
        format_name: str = FORMAT_NAME,
    ) -> WriteResult:
        """Validate inputs, then stream the whole artifact into the sink."""
        if self._used:
            raise RuntimeError("ArtifactWriter instances are single-use")
        scripts = scripts if scripts is not None else Scripts()
        self._validate(format_name, version, device_types, artifact_name, updates, scripts)
        self._used = True

        layout = layout_for(version)
        info = ArtifactInfo(format=format_name, version=version)

        with tempfile.TemporaryDirectory(
            prefix="mender-artifact-", dir=self._scratch_dir
        ) as tmp:
            scratch = Path(tmp)

            payloads: list[Payload] = []
            data_paths: list[Path] = []
            for index, handler in enumerate(updates):
                data_path = scratch / f"data-{index:04d}"
                files = self._compose(handler, data_path)
                payloads.append(Payload(type_tag=handler.type_tag, files=files))
                data_paths.append(data_path)
                logger.debug(
                    "Composed payload %d (%s): %d file(s).",
                    index, handler.type_tag, len(files),
                )

            header_path = scratch / HEADER_MEMBER
            header_info = HeaderInfo(
                updates=[UpdateType(type=p.type_tag) for p in payloads],
                device_types_compatible=list(device_types),
                artifact_name=artifact_name,
            )
            self._write_header(header_path, header_info, updates, payloads, scripts)

            version_bytes = encode_version(info)
            manifest: Manifest | None = None
            signature: bytes | None = None
            if layout.has_manifest:
                manifest = self._build_manifest(version_bytes, header_path, payloads)
                if self._signer is not None:
                    signature = self._signer.sign(manifest.to_bytes())

            with tarfile.open(fileobj=self._sink, mode="w|", format=_TAR_FORMAT) as outer:
                add_bytes(outer, VERSION_MEMBER, version_bytes)
                if manifest is not None:
                    add_bytes(outer, MANIFEST_MEMBER, manifest.to_bytes())
                if signature is not None:
                    add_bytes(outer, SIGNATURE_MEMBER, signature)
                add_file(outer, HEADER_MEMBER, header_path)
                for index, data_path in enumerate(data_paths):
                    add_file(outer, data_member_name(index, self._compress), data_path)

        logger.info(
            "Wrote artifact '%s' (format %s v%d, %d payload(s), %d script(s), %s).",
            artifact_name, format_name, version, len(payloads), len(scripts),
            "signed" if signature is not None else "unsigned",
        )
        return WriteResult(
            info=info,
            artifact_name=artifact_name,
            device_types=list(device_types),
            payloads=payloads,
            scripts=scripts.names(),
            signed=signature is not None,
            manifest=manifest,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(
        self,
        format_name: str,
        version: int,
        device_types: list[str],
        artifact_name: str,
        updates: list[Handler],
        scripts: Scripts,
    ) -> None:
        if version not in SUPPORTED_VERSIONS:
            raise VersionConstraintViolation(f"unsupported artifact version: {version}")
        layout = layout_for(version)
        if not format_name:
            raise VersionConstraintViolation("format name must not be empty")
        if not artifact_name:
            raise VersionConstraintViolation("artifact name must not be empty")
        if any(c.isspace() for c in artifact_name):
            raise VersionConstraintViolation("whitespace is not allowed in the artifact-name")
        if not device_types:
            raise VersionConstraintViolation("at least one device type is required")
        for device_type in device_types:
            if not device_type or any(c.isspace() for c in device_type):
                raise VersionConstraintViolation(f"invalid device type: {device_type!r}")
        if not updates:
            raise VersionConstraintViolation("at least one update is required")
        for handler in updates:
            if handler.version != version:
                raise VersionConstraintViolation(
                    f"handler for '{handler.type_tag}' produces version {handler.version} "
                    f"headers; artifact version is {version}"
                )
        if len(scripts) and not layout.supports_scripts:
            raise VersionConstraintViolation(
                f"can not use scripts artifact with version {version}"
            )
        for script in scripts:
            validate_script_name(script.name)
        if self._signer is not None and not layout.supports_signature:
            raise VersionConstraintViolation(
                f"can not use signed artifact with version {version}"
            )

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _compose(self, handler: Handler, data_path: Path) -> list[DataFile]:
        with open_archive(data_path, self._compress) as tar:
            sink = DataArchiveSink(tar)
            handler.compose(sink)
        if not sink.files:
            raise FormatError(f"handler for '{handler.type_tag}' composed no files")
        return list(sink.files)

    def _write_header(
        self,
        path: Path,
        header_info: HeaderInfo,
        updates: list[Handler],
        payloads: list[Payload],
        scripts: Scripts,
    ) -> None:
        with open_archive(path, compress=True) as tar:
            add_bytes(tar, HEADER_INFO, canonical_json_bytes(header_info.model_dump()))
            for script in scripts:
                add_file(tar, SCRIPTS_DIR + script.name, script.path, mode=0o755)
            for index, (handler, payload) in enumerate(zip(updates, payloads)):
                prefix = payload_header_prefix(index)
                for relpath, data in handler.header_entries(payload.files):
                    add_bytes(tar, prefix + relpath, data)

    @staticmethod
    def _build_manifest(
        version_bytes: bytes, header_path: Path, payloads: list[Payload]
    ) -> Manifest:
        entries = {
            VERSION_MEMBER: hashlib.sha256(version_bytes).hexdigest(),
            HEADER_MEMBER: file_sha256(header_path),
        }
        for index, payload in enumerate(payloads):
            for data_file in payload.files:
                entries[data_file_path(index, data_file.name)] = data_file.checksum
        return Manifest(entries=entries)
