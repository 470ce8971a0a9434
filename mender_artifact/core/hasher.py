"""Streaming hashing helpers.

Payload bytes never sit in memory whole: they are pulled through a
bounded buffer and hashed on the way past.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, BinaryIO

DEFAULT_BUFFER_SIZE = 32 * 1024


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


class HashingReader:
    """Read-only wrapper that hashes and counts everything read through it.

    Parameters
    ----------
    source:
        Any object with a ``read(size)`` method.
    limit:
        Optional hard cap on the number of bytes handed out.  Reads past
        the cap return ``b""`` as if the stream had ended.
    """

    def __init__(self, source: BinaryIO, limit: int | None = None) -> None:
        self._source = source
        self._limit = limit
        self._hash = hashlib.sha256()
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        if self._limit is not None:
            remaining = self._limit - self.bytes_read
            if remaining <= 0:
                return b""
            if size is None or size < 0 or size > remaining:
                size = remaining
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self._source.read(DEFAULT_BUFFER_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
        else:
            data = self._source.read(size)
        self._hash.update(data)
        self.bytes_read += len(data)
        return data

    def readable(self) -> bool:
        return True

    def drain(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> int:
        """Consume and hash whatever is left; return the number of bytes drained."""
        drained = 0
        while True:
            chunk = self.read(buffer_size)
            if not chunk:
                return drained
            drained += len(chunk)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


def copy_stream(
    source: BinaryIO,
    sink: BinaryIO,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> tuple[int, str]:
    """Copy *source* to *sink* through a bounded buffer.

    Returns ``(bytes_copied, sha256_hex)``.
    """
    digest = hashlib.sha256()
    copied = 0
    while True:
        chunk = source.read(buffer_size)
        if not chunk:
            break
        digest.update(chunk)
        sink.write(chunk)
        copied += len(chunk)
    return copied, digest.hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, no whitespace.

    Header records are serialised this way so that an unchanged header
    always yields the same archive bytes and thus the same digest.
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")
