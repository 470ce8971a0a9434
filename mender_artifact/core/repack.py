"""Repack pipeline — decompose an artifact, mutate it, recompose it.

The source is read with an accept-all verifier (its signature is about
to be replaced).  Scripts and payload bytes are staged in private
scratch storage, then fed to a fresh writer of the same version.
Scratch storage is removed on every exit path.

``sign_artifact`` and ``unpack_payload`` are built on the same pieces.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from mender_artifact.core.errors import AlreadySigned, RepackError, UnsignableVersion
from mender_artifact.core.hasher import DEFAULT_BUFFER_SIZE, copy_stream
from mender_artifact.core.layout import layout_for
from mender_artifact.core.reader import ArtifactReader
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.writer import ArtifactWriter, Signer
from mender_artifact.handlers.base import Handler, HandlerRegistry
from mender_artifact.handlers.rootfs import new_rootfs, rootfs_installer
from mender_artifact.models.artifact import DataFile, ReadResult

logger = logging.getLogger(__name__)

BeforeWriteFn = Callable[[ReadResult], None]


class _AcceptAll:
    """Verifier that accepts any signature."""

    def verify(self, message: bytes, signature: bytes) -> None:
        return None


class _Staging:
    """Scratch-side sinks for scripts and payload files, kept in arrival order."""

    def __init__(self, root: Path, buffer_size: int) -> None:
        self._root = root.resolve()
        self._scripts_dir = self._root / "scripts"
        self._payloads_dir = self._root / "payloads"
        self._buffer_size = buffer_size
        self.scripts: list[Path] = []
        self.files: list[Path] = []

    def _target(self, directory: Path, index: int, name: str) -> Path:
        # One directory per entry so duplicate names survive.
        slot = directory / f"{index:04d}"
        target = (slot / name).resolve()
        if target.parent != slot:
            raise RepackError(f"refusing to stage '{name}' outside scratch storage")
        slot.mkdir(parents=True)
        return target

    def stage_script(self, stream: BinaryIO, name: str) -> None:
        target = self._target(self._scripts_dir, len(self.scripts), name)
        with target.open("xb") as fh:
            copy_stream(stream, fh, self._buffer_size)
        target.chmod(0o755)
        self.scripts.append(target)

    def stage_file(self, stream: BinaryIO, data_file: DataFile) -> None:
        target = self._target(self._payloads_dir, len(self.files), data_file.name)
        with target.open("xb") as fh:
            copy_stream(stream, fh, self._buffer_size)
        mtime = data_file.modified.timestamp()
        os.utime(target, (mtime, mtime))
        self.files.append(target)


def repack(
    source: BinaryIO,
    dest: BinaryIO,
    *,
    signer: Signer | None = None,
    new_name: str | None = None,
    data_file: Path | str | None = None,
    before_write: BeforeWriteFn | None = None,
    compress: bool = True,
    scratch_dir: Path | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ReadResult:
    """Recompose *source* into *dest*.

    Parameters
    ----------
    signer:
        New signing key; ``None`` writes an unsigned artifact.
    new_name:
        Replacement artifact name; the source name is kept when ``None``.
    data_file:
        Replacement payload for a single-payload artifact.  The source
        payload is then checksummed and discarded instead of staged.
    before_write:
        Called with the source ``ReadResult`` after the read completes and
        before anything is written to *dest*; raise to abort.

    Returns
    -------
    ReadResult
        What was read from the source.  Its signature outcome is
        meaningless because the source signature is not checked.
    """
    with tempfile.TemporaryDirectory(prefix="mender-repack-", dir=scratch_dir) as tmp:
        staging = _Staging(Path(tmp), buffer_size)
        installer = rootfs_installer(
            None if data_file is not None else staging.stage_file, buffer_size
        )
        reader = ArtifactReader(
            source,
            HandlerRegistry([installer]),
            _AcceptAll(),
            staging.stage_script,
            buffer_size=buffer_size,
        )
        result = reader.read()
        logger.debug(
            "Staged %d payload file(s) and %d script(s) from '%s'.",
            len(staging.files), len(staging.scripts), result.artifact_name,
        )

        if before_write is not None:
            before_write(result)

        version = result.info.version
        updates: list[Handler]
        if data_file is not None:
            if len(result.payloads) != 1:
                raise RepackError(
                    f"replacement data needs a single-payload artifact, "
                    f"'{result.artifact_name}' has {len(result.payloads)}"
                )
            updates = [new_rootfs(version, data_file, buffer_size=buffer_size)]
        else:
            updates = []
            staged = iter(staging.files)
            for index, payload in enumerate(result.payloads):
                if len(payload.files) != 1:
                    raise RepackError(
                        f"payload {index:04d} has {len(payload.files)} files; "
                        "rootfs images carry exactly one"
                    )
                updates.append(new_rootfs(version, next(staged), buffer_size=buffer_size))

        scripts = Scripts()
        for path in staging.scripts:
            scripts.add(path)

        writer = ArtifactWriter(dest, signer, compress=compress, scratch_dir=scratch_dir)
        writer.write(
            result.device_types,
            new_name or result.artifact_name,
            updates,
            scripts,
            version=version,
            format_name=result.info.format,
        )

    logger.info(
        "Repacked '%s'%s%s%s.",
        result.artifact_name,
        f" as '{new_name}'" if new_name else "",
        " with replacement payload" if data_file is not None else "",
        " (signed)" if signer is not None else "",
    )
    return result


def sign_artifact(
    source: BinaryIO,
    dest: BinaryIO,
    signer: Signer,
    *,
    force: bool = False,
    compress: bool = True,
    scratch_dir: Path | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ReadResult:
    """Write a signed copy of *source* into *dest*.

    Refuses versions without signature support (``UnsignableVersion``)
    and already signed sources unless *force* is set (``AlreadySigned``).
    Both checks run before anything is written.
    """

    def guard(result: ReadResult) -> None:
        if not layout_for(result.info.version).supports_signature:
            raise UnsignableVersion(f"Can not sign v{result.info.version} artifact")
        if result.signed and not force:
            raise AlreadySigned(
                "Trying to sign already signed artifact; please use force option"
            )

    return repack(
        source,
        dest,
        signer=signer,
        before_write=guard,
        compress=compress,
        scratch_dir=scratch_dir,
        buffer_size=buffer_size,
    )


def unpack_payload(
    source: BinaryIO,
    dest: BinaryIO,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> ReadResult:
    """Copy the single rootfs image of *source* into *dest*."""
    written: list[str] = []

    def copy_out(stream: BinaryIO, data_file: DataFile) -> None:
        if written:
            raise RepackError(
                f"can not unpack '{data_file.name}': artifact holds more than one image"
            )
        copy_stream(stream, dest, buffer_size)
        written.append(data_file.name)

    reader = ArtifactReader(
        source,
        HandlerRegistry([rootfs_installer(copy_out, buffer_size)]),
        _AcceptAll(),
        buffer_size=buffer_size,
    )
    result = reader.read()
    logger.debug("Unpacked %s from '%s'.", written[0], result.artifact_name)
    return result
