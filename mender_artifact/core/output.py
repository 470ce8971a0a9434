"""Atomic placement of finished artifacts.

The codec only writes streams; putting a finished stream at its final
path is done here: write to a uniquely named ``<name>.*.tmp`` file next
to *path*, rename on success, remove the temporary file on any failure.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


@contextmanager
def atomic_output(path: Path | str) -> Iterator[BinaryIO]:
    """Yield a binary file that only appears at *path* if the block succeeds.

    Concurrent writers to the same *path* each get their own temporary
    file; the last one to finish wins.
    """
    path = Path(path)
    fh = tempfile.NamedTemporaryFile(
        mode="wb", dir=path.parent, prefix=path.name + ".", suffix=".tmp", delete=False
    )
    tmp_path = Path(fh.name)
    try:
        yield fh
        fh.flush()
        os.fsync(fh.fileno())
        fh.close()
        os.chmod(tmp_path, _mode_for(path))
        os.replace(tmp_path, path)
        logger.debug("Placed %s.", path)
    finally:
        if not fh.closed:
            fh.close()
        if tmp_path.exists():
            tmp_path.unlink()


def _mode_for(path: Path) -> int:
    # Temporary files are created 0600; keep the mode of a replaced file.
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        return 0o644
