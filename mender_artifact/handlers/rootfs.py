"""Full-filesystem image payloads (``rootfs-image``).

The same capability has two on-disk header shapes: version 1 keeps each
file's checksum inside the header archive, version 2 leaves checksums to
the manifest.  The variant is picked once, from the requested version.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from mender_artifact.core.errors import VersionConstraintViolation
from mender_artifact.core.hasher import DEFAULT_BUFFER_SIZE
from mender_artifact.handlers.base import Handler
from mender_artifact.models.artifact import DataFile

if TYPE_CHECKING:
    from mender_artifact.core.writer import DataArchiveSink

logger = logging.getLogger(__name__)

ROOTFS_TYPE = "rootfs-image"

InstallFn = Callable[[BinaryIO, DataFile], None]


class RootfsImage(Handler):
    """Base for both rootfs variants.

    Parameters
    ----------
    update:
        Image file to compose from.  Not needed when only installing.
    on_install:
        Called with the data stream and file metadata for each file read
        back from an artifact.  When absent, the bytes are read and
        discarded so they are still checksummed.
    """

    type_tag = ROOTFS_TYPE

    def __init__(
        self,
        update: Path | str | None = None,
        on_install: InstallFn | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self.update = Path(update) if update is not None else None
        self.on_install = on_install
        self._buffer_size = buffer_size

    def install(self, stream: BinaryIO, data_file: DataFile) -> None:
        if self.on_install is not None:
            self.on_install(stream, data_file)
            return
        while stream.read(self._buffer_size):
            pass

    def compose(self, sink: DataArchiveSink) -> list[DataFile]:
        if self.update is None:
            raise VersionConstraintViolation("rootfs-image handler has no update file")
        stat = self.update.stat()
        modified = datetime.fromtimestamp(int(stat.st_mtime), timezone.utc)
        with self.update.open("rb") as fh:
            data_file = sink.add_file(self.update.name, fh, stat.st_size, modified)
        logger.debug("Composed rootfs image %s (%d bytes).", self.update, stat.st_size)
        return [data_file]


class RootfsV1(RootfsImage):
    """Version 1 header: checksums stored as ``checksums/<file>.sha256sum``."""

    version = 1

    def header_entries(self, files: list[DataFile]) -> list[tuple[str, bytes]]:
        entries = super().header_entries(files)
        entries.extend(
            (f"checksums/{f.name}.sha256sum", f.checksum.encode("ascii")) for f in files
        )
        return entries


class RootfsV2(RootfsImage):
    """Version 2 header: checksums live in the signed manifest."""

    version = 2


_VARIANTS: dict[int, type[RootfsImage]] = {1: RootfsV1, 2: RootfsV2}


def new_rootfs(version: int, update: Path | str | None = None, **kwargs) -> RootfsImage:
    """Build the rootfs variant for *version*."""
    try:
        cls = _VARIANTS[version]
    except KeyError:
        raise VersionConstraintViolation(f"unsupported artifact version: {version}") from None
    return cls(update, **kwargs)


def rootfs_installer(
    on_install: InstallFn | None = None, buffer_size: int = DEFAULT_BUFFER_SIZE
) -> RootfsImage:
    """A rootfs handler for reading; installing is the same for every version."""
    return RootfsV2(on_install=on_install, buffer_size=buffer_size)
