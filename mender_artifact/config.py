"""Tool configuration — env-driven defaults resolved once per invocation.

Settings can be overridden via MENDER_ARTIFACT_* environment variables
or a .env file in the working directory.

Examples
--------
Override via environment::

    export MENDER_ARTIFACT_DEFAULT_OUTPUT_PATH=out/release.mender
    export MENDER_ARTIFACT_COMPRESSION=none
    export MENDER_ARTIFACT_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from mender_artifact.core.hasher import DEFAULT_BUFFER_SIZE
from mender_artifact.models.artifact import FORMAT_NAME, LATEST_FORMAT_VERSION


class ArtifactSettings(BaseSettings):
    """Defaults for writing and reading artifacts."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MENDER_ARTIFACT_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    format_name: str = FORMAT_NAME
    default_version: int = LATEST_FORMAT_VERSION
    default_output_path: Path = Path("artifact.mender")

    # "gzip" -> data/NNNN.tar.gz, "none" -> data/NNNN.tar
    compression: Literal["gzip", "none"] = "gzip"
    copy_buffer_size: int = DEFAULT_BUFFER_SIZE

    # Parent for per-operation scratch directories; system temp when unset
    scratch_dir: Path | None = None

    log_level: str = "WARNING"

    @property
    def compress(self) -> bool:
        return self.compression == "gzip"


def load_settings() -> ArtifactSettings:
    """Resolve settings from the environment; call once per operation."""
    return ArtifactSettings()
