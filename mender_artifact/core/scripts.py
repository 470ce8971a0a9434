"""State-script registry.

Script file names follow ``<State>_<Enter|Leave|Error>_<NN>[_<suffix>]``,
e.g. ``ArtifactInstall_Enter_05_wifi-driver``.  Names are validated when
scripts are packed and again when they are read back.  Input order is
preserved and duplicates are passed through untouched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from mender_artifact.core.errors import InvalidScriptName

logger = logging.getLogger(__name__)

KNOWN_STATES: frozenset[str] = frozenset({
    "Idle",
    "Sync",
    "Download",
    "ArtifactInstall",
    "ArtifactReboot",
    "ArtifactCommit",
    "ArtifactRollback",
    "ArtifactRollbackReboot",
    "ArtifactFailure",
})

_SCRIPT_NAME = re.compile(r"^([A-Za-z]+)_(Enter|Leave|Error)_[0-9]{2}(_[^/\\\s\x00]+)?$")


def validate_script_name(name: str) -> str:
    """Return the lifecycle state a script hooks into, or raise ``InvalidScriptName``."""
    match = _SCRIPT_NAME.match(name)
    if match is None or match.group(1) not in KNOWN_STATES:
        raise InvalidScriptName(name)
    return match.group(1)


class Script(BaseModel):
    """A script queued for packing; bytes are streamed from ``path`` at write time."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path


class Scripts:
    """Ordered collection of state scripts."""

    def __init__(self) -> None:
        self._scripts: list[Script] = []

    def add(self, path: Path | str, name: str | None = None) -> Script:
        """Queue the script at *path*, optionally packed under a different *name*."""
        path = Path(path)
        script_name = name or path.name
        validate_script_name(script_name)
        if not path.is_file():
            raise FileNotFoundError(f"can not stat script file: {path}")
        script = Script(name=script_name, path=path)
        self._scripts.append(script)
        logger.debug("Queued state script %s from %s.", script_name, path)
        return script

    def add_dir(self, directory: Path | str) -> list[Script]:
        """Queue every file in *directory*, sorted by file name."""
        directory = Path(directory)
        if not directory.is_dir():
            raise NotADirectoryError(f"can not list directory contents of: {directory}")
        return [self.add(p) for p in sorted(directory.iterdir()) if p.is_file()]

    def add_paths(self, paths: list[Path | str]) -> None:
        """Queue a mix of script files and directories of scripts."""
        for p in paths:
            if Path(p).is_dir():
                self.add_dir(p)
            else:
                self.add(p)

    def names(self) -> list[str]:
        return [s.name for s in self._scripts]

    def __len__(self) -> int:
        return len(self._scripts)

    def __iter__(self):
        return iter(list(self._scripts))
