"""Unit tests for ArtifactWriter — eager validation, layout and determinism."""

from __future__ import annotations

import gzip
import io
import json
import tarfile

import pytest

from mender_artifact.core.errors import FormatError, VersionConstraintViolation
from mender_artifact.core.hasher import sha256_hex
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers.base import Handler
from mender_artifact.handlers.rootfs import RootfsV1, RootfsV2
from mender_artifact.models.manifest import Manifest


class _LyingHandler(Handler):
    """Declares *size* bytes but supplies *content*."""

    type_tag = "lying"
    version = 2

    def __init__(self, content: bytes, size: int, name: str = "blob") -> None:
        self.content = content
        self.size = size
        self.name = name

    def install(self, stream, data_file):
        stream.read()

    def compose(self, sink):
        return [sink.add_file(self.name, io.BytesIO(self.content), self.size)]


def _members(raw: bytes) -> list[str]:
    with tarfile.open(fileobj=io.BytesIO(raw), mode="r") as tar:
        return tar.getnames()


def _extract(raw: bytes, name: str) -> bytes:
    with tarfile.open(fileobj=io.BytesIO(raw), mode="r") as tar:
        return tar.extractfile(name).read()


# ---------------------------------------------------------------------------
# Validation happens before any output
# ---------------------------------------------------------------------------


class TestWriterValidation:
    """Invalid inputs raise VersionConstraintViolation and write nothing."""

    def _write(self, update_file, sink=None, signer=None, **overrides):
        kwargs = dict(
            device_types=["vexpress-qemu"],
            artifact_name="release-1",
            updates=[RootfsV2(update_file)],
            scripts=None,
            version=2,
        )
        kwargs.update(overrides)
        sink = sink if sink is not None else io.BytesIO()
        ArtifactWriter(sink, signer).write(
            kwargs.pop("device_types"),
            kwargs.pop("artifact_name"),
            kwargs.pop("updates"),
            kwargs.pop("scripts"),
            **kwargs,
        )

    def test_unsupported_version(self, update_file):
        with pytest.raises(VersionConstraintViolation):
            self._write(update_file, version=3)

    def test_scripts_on_v1(self, update_file, make_script):
        scripts = Scripts()
        scripts.add(make_script())
        sink = io.BytesIO()
        with pytest.raises(VersionConstraintViolation, match="scripts"):
            self._write(update_file, sink, version=1, updates=[RootfsV1(update_file)], scripts=scripts)
        assert sink.getvalue() == b""

    def test_signer_on_v1(self, update_file, keypair):
        signer, _ = keypair
        sink = io.BytesIO()
        with pytest.raises(VersionConstraintViolation, match="signed"):
            self._write(update_file, sink, signer=signer, version=1, updates=[RootfsV1(update_file)])
        assert sink.getvalue() == b""

    @pytest.mark.parametrize("name", ["", "release 1", "release\t1"])
    def test_bad_artifact_name(self, update_file, name):
        with pytest.raises(VersionConstraintViolation):
            self._write(update_file, artifact_name=name)

    @pytest.mark.parametrize("device_types", [[], [""], ["vexpress qemu"]])
    def test_bad_device_types(self, update_file, device_types):
        with pytest.raises(VersionConstraintViolation):
            self._write(update_file, device_types=device_types)

    def test_no_updates(self, update_file):
        with pytest.raises(VersionConstraintViolation):
            self._write(update_file, updates=[])

    def test_handler_version_mismatch(self, update_file):
        with pytest.raises(VersionConstraintViolation, match="version"):
            self._write(update_file, updates=[RootfsV1(update_file)])

    def test_single_use(self, update_file):
        writer = ArtifactWriter(io.BytesIO())
        writer.write(["dev"], "a", [RootfsV2(update_file)])
        with pytest.raises(RuntimeError):
            writer.write(["dev"], "a", [RootfsV2(update_file)])


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestWriterLayout:
    def test_v2_member_order(self, make_artifact, keypair):
        signer, _ = keypair
        raw = make_artifact(signer=signer)
        assert _members(raw) == [
            "version", "manifest", "manifest.sig", "header.tar.gz", "data/0000.tar.gz",
        ]

    def test_v1_member_order(self, make_artifact):
        assert _members(make_artifact(version=1)) == [
            "version", "header.tar.gz", "data/0000.tar.gz",
        ]

    def test_uncompressed_data_member(self, make_artifact):
        assert _members(make_artifact(compress=False))[-1] == "data/0000.tar"

    def test_manifest_covers_members_and_files(self, make_artifact, update_file):
        raw = make_artifact()
        manifest = Manifest.parse(_extract(raw, "manifest"))
        assert manifest.get("version") == sha256_hex(_extract(raw, "version"))
        assert manifest.get("header.tar.gz") == sha256_hex(_extract(raw, "header.tar.gz"))
        assert manifest.get("data/0000/rootfs.ext4") == sha256_hex(update_file.read_bytes())

    def test_header_contents(self, make_artifact, make_script):
        raw = make_artifact(scripts=[make_script("ArtifactInstall_Enter_01")])
        header = gzip.decompress(_extract(raw, "header.tar.gz"))
        with tarfile.open(fileobj=io.BytesIO(header), mode="r") as tar:
            names = tar.getnames()
            info = json.loads(tar.extractfile("header-info").read())
        assert names == [
            "header-info",
            "scripts/ArtifactInstall_Enter_01",
            "headers/0000/files",
            "headers/0000/type-info",
            "headers/0000/meta-data",
        ]
        assert info == {
            "artifact_name": "release-1",
            "device_types_compatible": ["vexpress-qemu"],
            "updates": [{"type": "rootfs-image"}],
        }

    def test_output_is_deterministic(self, make_artifact):
        assert make_artifact() == make_artifact()

    def test_write_result(self, update_file):
        result = ArtifactWriter(io.BytesIO()).write(["a", "b"], "n", [RootfsV2(update_file)])
        assert result.device_types == ["a", "b"]
        assert result.payloads[0].files[0].size == update_file.stat().st_size
        assert not result.signed


class TestDataArchiveSink:
    """Declared sizes must match what the stream delivers."""

    def test_short_transfer(self):
        with pytest.raises(FormatError, match="short transfer"):
            ArtifactWriter(io.BytesIO()).write(["dev"], "a", [_LyingHandler(b"abc", 10)])

    def test_long_transfer(self):
        with pytest.raises(FormatError, match="long transfer"):
            ArtifactWriter(io.BytesIO()).write(["dev"], "a", [_LyingHandler(b"abcdef", 3)])

    @pytest.mark.parametrize("name", ["../escape.img", "/tmp/escape.img", "sub/escape.img", ".."])
    def test_file_name_must_be_plain(self, name):
        with pytest.raises(FormatError, match="invalid data file name"):
            ArtifactWriter(io.BytesIO()).write(["dev"], "a", [_LyingHandler(b"abc", 3, name)])
