"""The v2 manifest — the exact bytes a signature covers.

Canonical form: one ``"<sha256 hex>  <path>\\n"`` line per entry, sorted
by path.  Writer and reader must agree on these bytes, so the reader
keeps the raw bytes it received and never re-serialises them.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

_LINE = re.compile(r"^([0-9a-f]{64})  (\S+)$")


class ManifestParseError(ValueError):
    """Raised when manifest bytes are not in canonical form."""


class Manifest(BaseModel):
    """Mapping of artifact member paths to their SHA-256 digests."""

    model_config = ConfigDict(frozen=True)

    entries: dict[str, str] = Field(default_factory=dict)

    def to_bytes(self) -> bytes:
        lines = [f"{self.entries[path]}  {path}\n" for path in sorted(self.entries)]
        return "".join(lines).encode("utf-8")

    def get(self, path: str) -> str | None:
        return self.entries.get(path)

    @classmethod
    def parse(cls, raw: bytes) -> Manifest:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestParseError("manifest is not valid UTF-8") from exc

        entries: dict[str, str] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line:
                continue
            match = _LINE.match(line)
            if match is None:
                raise ManifestParseError(f"malformed manifest line {lineno}: {line!r}")
            digest, path = match.groups()
            if path in entries:
                raise ManifestParseError(f"duplicate manifest entry: {path}")
            entries[path] = digest
        return cls(entries=entries)
