"""Artifact reader — strictly sequential decoder with deferred signature reporting.

States::

    AWAITING_VERSION -> AWAITING_MANIFEST (v2) -> AWAITING_HEADER
                     -> AWAITING_DATA -> DONE

A bad signature never stops the read.  Its outcome is captured when the
``manifest.sig`` member is met and reported in ``ReadResult.signature``
once the rest of the container has been confirmed sound.  Structural
errors are raised immediately and carry the captured outcome in their
``signature`` attribute.
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import tarfile
import zlib
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, BinaryIO, Protocol

from pydantic import ValidationError

from mender_artifact.core.errors import (
    ArtifactError,
    ChecksumMismatch,
    FormatError,
    SignatureError,
)
from mender_artifact.core.hasher import DEFAULT_BUFFER_SIZE, HashingReader, sha256_hex
from mender_artifact.core.layout import (
    HEADER_INFO,
    HEADER_MEMBER,
    MANIFEST_MEMBER,
    SCRIPTS_DIR,
    SIGNATURE_MEMBER,
    VERSION_MEMBER,
    Layout,
    data_file_path,
    decode_version,
    is_plain_name,
    layout_for,
    parse_data_member,
    parse_payload_header,
)
from mender_artifact.core.scripts import validate_script_name
from mender_artifact.handlers.base import Handler, HandlerRegistry
from mender_artifact.models.artifact import (
    FORMAT_NAME,
    ArtifactInfo,
    DataFile,
    HeaderInfo,
    Payload,
    ReadResult,
    SignatureOutcome,
    SignatureStatus,
)
from mender_artifact.models.manifest import Manifest, ManifestParseError

logger = logging.getLogger(__name__)

# Upper bound for metadata members (version, manifest, signature, header records).
MAX_METADATA_SIZE = 1024 * 1024

ScriptFn = Callable[[BinaryIO, str], None]


class Verifier(Protocol):
    def verify(self, message: bytes, signature: bytes) -> None: ...


class ReaderState(str, Enum):
    AWAITING_VERSION = "awaiting_version"
    AWAITING_MANIFEST = "awaiting_manifest"
    AWAITING_HEADER = "awaiting_header"
    AWAITING_DATA = "awaiting_data"
    DONE = "done"


class _Header:
    """Decoded header archive."""

    def __init__(self, info: HeaderInfo, files: list[list[str]], scripts: list[str]) -> None:
        self.info = info
        self.files = files
        self.scripts = scripts


def _read_metadata(tar: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
    if not member.isfile():
        raise FormatError(f"'{member.name}' is not a regular file")
    if member.size > MAX_METADATA_SIZE:
        raise FormatError(f"'{member.name}' is too large ({member.size} bytes)")
    fh = tar.extractfile(member)
    if fh is None:
        raise FormatError(f"can not read '{member.name}'")
    return fh.read()


def _load_json(raw: bytes, what: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise FormatError(f"malformed {what}: {exc}") from exc


# Deterministic writers emit gzip headers with no flags, a zero mtime
# and an unknown OS; only the extra-flags byte varies with the level.
_GZIP_HEADER_SIZE = 10
_GZIP_PREFIX = b"\x1f\x8b\x08\x00\x00\x00\x00\x00"
_GZIP_XFL = (0, 2, 4)
_GZIP_OS_UNKNOWN = 0xFF

_ZERO_BLOCK = bytes(tarfile.BLOCKSIZE)


def _plain_gzip_header(head: bytes) -> bool:
    return (
        len(head) == _GZIP_HEADER_SIZE
        and head[:8] == _GZIP_PREFIX
        and head[8] in _GZIP_XFL
        and head[9] == _GZIP_OS_UNKNOWN
    )


def _round_block(offset: int) -> int:
    return -(-offset // tarfile.BLOCKSIZE) * tarfile.BLOCKSIZE


class _BlockStream:
    """Decoded data archive bytes as handed to ``tarfile``, one block at a time.

    Keeps the last block read so the padding ``tarfile`` skips over can
    still be inspected.
    """

    def __init__(self, source: BinaryIO) -> None:
        self._source = source
        self.position = 0
        self.last = b""

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self.position += len(data)
            self.last = data
        return data

    def padded_to(self, offset: int) -> bool:
        """True when the block holding *offset* was read and is zero past it."""
        tail = offset % tarfile.BLOCKSIZE
        if not tail:
            return True
        return (
            self.position == _round_block(offset)
            and len(self.last) == tarfile.BLOCKSIZE
            and self.last[tail:].count(0) == tarfile.BLOCKSIZE - tail
        )


class _MemberStream:
    """Bytes of one outer member; running out of them is a framing error."""

    def __init__(self, raw: io.BufferedReader, name: str) -> None:
        self._raw = raw
        self._name = name

    def read(self, size: int = -1) -> bytes:
        try:
            return self._raw.read(size)
        except tarfile.ReadError as exc:
            raise FormatError(f"'{self._name}' is cut short: {exc}") from exc

    def peek(self, size: int) -> bytes:
        try:
            return self._raw.peek(size)
        except tarfile.ReadError as exc:
            raise FormatError(f"'{self._name}' is cut short: {exc}") from exc


class ArtifactReader:
    """Reads one artifact from a non-seekable stream.

    Parameters
    ----------
    source:
        Binary stream positioned at the start of the artifact.
    handlers:
        Registry with a handler for every payload type the caller expects.
    verifier:
        Signature capability.  ``None`` means signed artifacts are reported
        as unverifiable, never as valid.
    on_script:
        Called with ``(stream, name)`` for every state script, in order.
    """

    def __init__(
        self,
        source: BinaryIO,
        handlers: HandlerRegistry | None = None,
        verifier: Verifier | None = None,
        on_script: ScriptFn | None = None,
        *,
        format_name: str = FORMAT_NAME,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self._source = source
        self._handlers = handlers if handlers is not None else HandlerRegistry()
        self._verifier = verifier
        self._on_script = on_script
        self._format_name = format_name
        self._buffer_size = buffer_size
        self._state = ReaderState.AWAITING_VERSION
        self._signed = False
        self._signature = SignatureOutcome()
        self._used = False

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def signature(self) -> SignatureOutcome:
        """Signature outcome captured so far."""
        return self._signature

    def read(self) -> ReadResult:
        """Consume the whole artifact and return what it contains."""
        if self._used:
            raise RuntimeError("ArtifactReader instances are single-use")
        self._used = True
        try:
            try:
                return self._read()
            except (tarfile.TarError, zlib.error, EOFError) as exc:
                raise FormatError(f"corrupt artifact: {exc}") from exc
        except ArtifactError as exc:
            exc.signature = self._signature
            logger.debug("Read failed in state %s: %s", self._state.value, exc)
            raise

    # ------------------------------------------------------------------
    # Sequential decoding
    # ------------------------------------------------------------------

    def _read(self) -> ReadResult:
        outer = tarfile.open(fileobj=self._source, mode="r|")

        member = outer.next()
        if member is None or member.name != VERSION_MEMBER:
            raise FormatError("artifact must start with a version record")
        raw_version = _read_metadata(outer, member)
        info = decode_version(raw_version, self._format_name)
        layout = layout_for(info.version)
        logger.debug("Artifact format %s, version %d.", info.format, info.version)

        member = outer.next()
        manifest: Manifest | None = None
        if layout.has_manifest:
            self._state = ReaderState.AWAITING_MANIFEST
            manifest, member = self._read_manifest(outer, member, layout, raw_version)
        elif member is not None and member.name in (MANIFEST_MEMBER, SIGNATURE_MEMBER):
            raise FormatError(f"'{member.name}' is not allowed in version {info.version}")

        self._state = ReaderState.AWAITING_HEADER
        if member is None or member.name != HEADER_MEMBER:
            found = member.name if member is not None else "end of artifact"
            raise FormatError(f"expected {HEADER_MEMBER}, found {found}")
        header = self._read_header(outer, member, layout)

        self._state = ReaderState.AWAITING_DATA
        handlers = [self._handlers.get(u.type) for u in header.info.updates]
        payloads: list[Payload] = []
        consumed: set[str] = set()
        for index, handler in enumerate(handlers):
            member = outer.next()
            if member is None:
                raise FormatError(f"missing data archive for payload {index:04d}")
            parsed = parse_data_member(member.name)
            if parsed is None or parsed[0] != index:
                raise FormatError(
                    f"unexpected member '{member.name}'; expected data archive {index:04d}"
                )
            files = self._read_data(
                outer, member, parsed[1], index, handler, header.files[index], layout
            )
            consumed.update(data_file_path(index, f.name) for f in files)
            payloads.append(Payload(type_tag=handler.type_tag, files=files))

        member = outer.next()
        if member is not None:
            raise FormatError(f"unexpected member after data archives: '{member.name}'")
        layout.check_complete(consumed)

        self._state = ReaderState.DONE
        if self._signature.status == SignatureStatus.INVALID:
            logger.warning("Artifact '%s' is well formed but its signature is invalid.",
                           header.info.artifact_name)
        logger.info(
            "Read artifact '%s' (v%d, %d payload(s), signature: %s).",
            header.info.artifact_name, info.version, len(payloads),
            self._signature.status.value,
        )
        return ReadResult(
            info=ArtifactInfo(format=info.format, version=info.version),
            artifact_name=header.info.artifact_name,
            device_types=list(header.info.device_types_compatible),
            payloads=payloads,
            scripts=header.scripts,
            signed=self._signed,
            signature=self._signature,
            manifest=manifest,
        )

    def _read_manifest(
        self,
        outer: tarfile.TarFile,
        member: tarfile.TarInfo | None,
        layout: Layout,
        raw_version: bytes,
    ) -> tuple[Manifest, tarfile.TarInfo | None]:
        if member is None or member.name != MANIFEST_MEMBER:
            raise FormatError(f"version {layout.version} artifact is missing its manifest")
        raw_manifest = _read_metadata(outer, member)
        try:
            manifest = Manifest.parse(raw_manifest)
        except ManifestParseError as exc:
            raise FormatError(str(exc)) from exc
        layout.manifest = manifest
        layout.check_member(VERSION_MEMBER, sha256_hex(raw_version))

        member = outer.next()
        if member is not None and member.name == SIGNATURE_MEMBER:
            self._signed = True
            self._signature = self._verify(raw_manifest, _read_metadata(outer, member))
            member = outer.next()
        return manifest, member

    def _verify(self, message: bytes, signature: bytes) -> SignatureOutcome:
        if self._verifier is None:
            return SignatureOutcome(
                status=SignatureStatus.UNVERIFIABLE,
                detail="artifact is signed but no verification key was provided",
            )
        try:
            self._verifier.verify(message, signature)
        except SignatureError as exc:
            logger.debug("Signature verification failed: %s", exc)
            return SignatureOutcome(status=SignatureStatus.INVALID, detail=str(exc))
        return SignatureOutcome(status=SignatureStatus.VERIFIED)

    def _read_header(
        self, outer: tarfile.TarFile, member: tarfile.TarInfo, layout: Layout
    ) -> _Header:
        raw = outer.extractfile(member)
        if raw is None:
            raise FormatError(f"can not read '{HEADER_MEMBER}'")
        hashing = HashingReader(raw)

        with tarfile.open(fileobj=hashing, mode="r|gz") as inner:
            first = inner.next()
            if first is None or first.name != HEADER_INFO:
                raise FormatError(f"header must start with {HEADER_INFO}")
            try:
                info = HeaderInfo.model_validate(
                    _load_json(_read_metadata(inner, first), HEADER_INFO)
                )
            except ValidationError as exc:
                raise FormatError(f"malformed {HEADER_INFO}: {exc}") from exc
            if not info.updates:
                raise FormatError("header declares no updates")
            if not info.device_types_compatible:
                raise FormatError("header declares no compatible device types")

            files: dict[int, list[str]] = {}
            scripts: list[str] = []
            for entry in iter(inner.next, None):
                if entry.name.startswith(SCRIPTS_DIR):
                    scripts.append(self._deliver_script(inner, entry, layout))
                    continue
                parsed = parse_payload_header(entry.name)
                if parsed is None or parsed[0] >= len(info.updates):
                    raise FormatError(f"unexpected header entry '{entry.name}'")
                index, relpath = parsed
                data = _read_metadata(inner, entry)
                if relpath == "files":
                    files[index] = self._parse_files(data, entry.name)
                elif relpath == "type-info":
                    declared = _load_json(data, entry.name)
                    if not isinstance(declared, dict) or declared.get("type") != info.updates[index].type:
                        raise FormatError(f"'{entry.name}' does not match header-info")
                elif relpath == "meta-data":
                    pass
                elif not layout.accept_header_record(index, relpath, data):
                    raise FormatError(f"unexpected header entry '{entry.name}'")

        hashing.drain(self._buffer_size)
        layout.check_member(HEADER_MEMBER, hashing.hexdigest())

        missing = [i for i in range(len(info.updates)) if i not in files]
        if missing:
            raise FormatError(f"header has no file list for payload {missing[0]:04d}")
        return _Header(info, [files[i] for i in range(len(info.updates))], scripts)

    def _deliver_script(
        self, inner: tarfile.TarFile, entry: tarfile.TarInfo, layout: Layout
    ) -> str:
        name = entry.name[len(SCRIPTS_DIR):]
        validate_script_name(name)
        if not layout.supports_scripts:
            raise FormatError(f"scripts are not allowed in version {layout.version}")
        if not entry.isfile():
            raise FormatError(f"script '{name}' is not a regular file")
        if self._on_script is not None:
            fh = inner.extractfile(entry)
            if fh is None:
                raise FormatError(f"can not read script '{name}'")
            self._on_script(fh, name)
        logger.debug("Read state script %s.", name)
        return name

    @staticmethod
    def _parse_files(data: bytes, where: str) -> list[str]:
        record = _load_json(data, where)
        names = record.get("files") if isinstance(record, dict) else None
        if (
            not isinstance(names, list)
            or not names
            or not all(isinstance(n, str) and is_plain_name(n) for n in names)
            or len(set(names)) != len(names)
        ):
            raise FormatError(f"'{where}' must list unique, plain file names")
        return names

    def _read_data(
        self,
        outer: tarfile.TarFile,
        member: tarfile.TarInfo,
        compressed: bool,
        index: int,
        handler: Handler,
        names: list[str],
        layout: Layout,
    ) -> list[DataFile]:
        """Stream one data archive into *handler*.

        Every byte of the archive is accounted for: file contents by their
        digest, tar headers by their own checksum, padding and the end of
        archive marker by being all zeros, and the gzip framing by its
        CRC.  Damage anywhere is reported as a ``ChecksumMismatch`` for the
        file being read at the time.
        """
        extracted = outer.extractfile(member)
        if extracted is None:
            raise FormatError(f"can not read '{member.name}'")
        raw = _MemberStream(extracted, member.name)

        files: list[DataFile] = []

        def damaged() -> ChecksumMismatch:
            # The file being read, or the next one expected.
            return ChecksumMismatch(names[min(len(files), len(names) - 1)])

        try:
            source: Any = raw
            if compressed:
                if not _plain_gzip_header(raw.peek(_GZIP_HEADER_SIZE)[:_GZIP_HEADER_SIZE]):
                    raise damaged()
                source = gzip.GzipFile(fileobj=raw, mode="rb")
            stream = _BlockStream(source)
            end = 0
            with tarfile.open(fileobj=stream, mode="r|", bufsize=tarfile.BLOCKSIZE) as inner:
                for position, entry in enumerate(inner):
                    if position >= len(names) or entry.name != names[position]:
                        raise FormatError(
                            f"data file '{entry.name}' in '{member.name}' does not match "
                            "the header's file list"
                        )
                    if not entry.isfile():
                        raise FormatError(f"data file '{entry.name}' is not a regular file")
                    files.append(self._install(inner, entry, index, handler, layout))
                    end = _round_block(entry.offset_data + entry.size)
                    if not stream.padded_to(entry.offset_data + entry.size):
                        raise ChecksumMismatch(entry.name)

            # tarfile stops at the first end-of-archive block.
            if stream.position != end + tarfile.BLOCKSIZE or stream.last != _ZERO_BLOCK:
                raise damaged()
            if len(files) != len(names):
                raise FormatError(
                    f"'{member.name}' holds {len(files)} of {len(names)} declared files"
                )
            while chunk := stream.read(self._buffer_size):
                if chunk.count(0) != len(chunk):
                    raise damaged()
        except (tarfile.TarError, zlib.error, EOFError, gzip.BadGzipFile) as exc:
            raise damaged() from exc
        return files

    def _install(
        self,
        inner: tarfile.TarFile,
        entry: tarfile.TarInfo,
        index: int,
        handler: Handler,
        layout: Layout,
    ) -> DataFile:
        expected = layout.expected_checksum(index, entry.name)
        data_file = DataFile(
            name=entry.name,
            size=entry.size,
            modified=datetime.fromtimestamp(entry.mtime, timezone.utc),
            checksum=expected,
        )
        fh = inner.extractfile(entry)
        if fh is None:
            raise FormatError(f"can not read data file '{entry.name}'")
        stream = HashingReader(fh, limit=entry.size)
        handler.install(stream, data_file)
        if stream.bytes_read != entry.size:
            raise FormatError(
                f"handler for '{handler.type_tag}' consumed {stream.bytes_read} "
                f"of {entry.size} bytes of '{entry.name}'"
            )
        actual = stream.hexdigest()
        if actual != expected:
            raise ChecksumMismatch(entry.name, expected, actual)
        logger.debug("Installed %s (%d bytes) from payload %04d.", entry.name, entry.size, index)
        return data_file
