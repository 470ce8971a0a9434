"""Unit tests for ArtifactSettings — defaults and env overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from mender_artifact.config import ArtifactSettings, load_settings


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path):
    """Keep a developer's .env and environment out of the tests."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "MENDER_ARTIFACT_COMPRESSION",
        "MENDER_ARTIFACT_DEFAULT_VERSION",
        "MENDER_ARTIFACT_LOG_LEVEL",
        "MENDER_ARTIFACT_SCRATCH_DIR",
    ):
        monkeypatch.delenv(var, raising=False)


class TestArtifactSettings:
    def test_defaults(self):
        settings = ArtifactSettings()
        assert settings.format_name == "mender"
        assert settings.default_version == 2
        assert settings.default_output_path == Path("artifact.mender")
        assert settings.compress is True
        assert settings.copy_buffer_size == 32 * 1024
        assert settings.scratch_dir is None
        assert settings.log_level == "WARNING"

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MENDER_ARTIFACT_COMPRESSION", "none")
        monkeypatch.setenv("MENDER_ARTIFACT_DEFAULT_VERSION", "1")
        monkeypatch.setenv("MENDER_ARTIFACT_SCRATCH_DIR", str(tmp_path))
        settings = load_settings()
        assert settings.compress is False
        assert settings.default_version == 1
        assert settings.scratch_dir == tmp_path

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("MENDER_ARTIFACT_LOG_LEVEL=DEBUG\n")
        assert load_settings().log_level == "DEBUG"

    def test_invalid_compression(self, monkeypatch):
        monkeypatch.setenv("MENDER_ARTIFACT_COMPRESSION", "zstd")
        with pytest.raises(ValidationError):
            load_settings()
