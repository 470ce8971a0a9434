"""Shared test fixtures for mender_artifact."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from mender_artifact.bridge.crypto_bridge import Signer, Verifier, generate_keypair, write_keypair
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers.rootfs import new_rootfs

# Distinctive so tests can find the payload inside an uncompressed artifact.
ROOTFS_CONTENT = b"rootfs-image-payload-0123456789"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def update_file(tmp_dir: Path) -> Path:
    """A small rootfs image file."""
    path = tmp_dir / "rootfs.ext4"
    path.write_bytes(ROOTFS_CONTENT)
    return path


@pytest.fixture
def make_update(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: write an update file with the given name and content."""

    def _factory(name: str = "rootfs.ext4", content: bytes = ROOTFS_CONTENT) -> Path:
        directory = tmp_dir / "updates" / name
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(content)
        return path

    return _factory


@pytest.fixture
def make_script(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: write an executable state script."""

    def _factory(name: str = "ArtifactInstall_Enter_01", body: str = "#!/bin/sh\nexit 0\n") -> Path:
        directory = tmp_dir / "scripts"
        directory.mkdir(exist_ok=True)
        path = directory / name
        path.write_text(body, encoding="utf-8")
        path.chmod(0o755)
        return path

    return _factory


@pytest.fixture
def keypair() -> tuple[Signer, Verifier]:
    """An in-memory Ed25519 signer and its matching verifier."""
    priv, pub = generate_keypair()
    return Signer(priv), Verifier(pub)


@pytest.fixture
def key_files(tmp_dir: Path) -> tuple[Path, Path]:
    """A key-pair on disk: ``(private_path, public_path)``."""
    key_dir = tmp_dir / "keys"
    key_dir.mkdir()
    return write_keypair(key_dir / "artifact")


# ---------------------------------------------------------------------------
# Artifact factory — shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def make_artifact(update_file: Path) -> Callable[..., bytes]:
    """Factory fixture: write an artifact in memory and return its bytes."""

    def _factory(
        version: int = 2,
        name: str = "release-1",
        device_types: tuple[str, ...] = ("vexpress-qemu",),
        updates: list[Path] | None = None,
        scripts: list[Path] | None = None,
        signer: Any = None,
        compress: bool = True,
    ) -> bytes:
        sink = io.BytesIO()
        queued = Scripts()
        for path in scripts or []:
            queued.add(path)
        handlers = [new_rootfs(version, p) for p in (updates or [update_file])]
        ArtifactWriter(sink, signer, compress=compress).write(
            list(device_types), name, handlers, queued, version=version
        )
        return sink.getvalue()

    return _factory


@pytest.fixture
def rootfs_content() -> bytes:
    """Bytes of the ``update_file`` fixture."""
    return ROOTFS_CONTENT
