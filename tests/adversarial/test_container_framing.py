"""Adversarial tests — malformed outer framing and payload dispatch.

Every structural defect must surface as a typed error, never as a
partial result or a raw tarfile/zlib exception.
"""

from __future__ import annotations

import io
import tarfile

import pytest

from mender_artifact.core.errors import FormatError, UnsupportedPayloadType
from mender_artifact.core.reader import ArtifactReader, ReaderState
from mender_artifact.core.validate import read_artifact
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers.base import HandlerRegistry
from mender_artifact.handlers.rootfs import RootfsV2, rootfs_installer


def _split(raw: bytes) -> list[tuple[str, bytes]]:
    with tarfile.open(fileobj=io.BytesIO(raw), mode="r") as tar:
        return [(m.name, tar.extractfile(m).read()) for m in tar.getmembers()]


def _join(members: list[tuple[str, bytes]]) -> bytes:
    out = io.BytesIO()
    with tarfile.open(fileobj=out, mode="w", format=tarfile.GNU_FORMAT) as tar:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return out.getvalue()


class _FilesMismatch(RootfsV2):
    """Claims a different file name in the header than it writes."""

    def header_entries(self, files):
        entries = dict(super().header_entries(files))
        entries["files"] = b'{"files":["other.img"]}'
        return list(entries.items())


class _DeltaHandler(RootfsV2):
    type_tag = "delta-update"


class TestVersionRecord:
    def test_empty_stream(self):
        with pytest.raises(FormatError):
            read_artifact(io.BytesIO(b""))

    def test_not_a_tar(self):
        with pytest.raises(FormatError):
            read_artifact(io.BytesIO(b"\x00\x01garbage" * 100))

    def test_version_not_first(self, make_artifact):
        members = _split(make_artifact())
        members = [members[1], members[0], *members[2:]]
        with pytest.raises(FormatError, match="start with a version"):
            read_artifact(io.BytesIO(_join(members)))

    @pytest.mark.parametrize(
        "record",
        [b"{", b'{"format":"mender","version":3}', b'{"format":"rpm","version":2}'],
    )
    def test_bad_version_record(self, make_artifact, record):
        members = _split(make_artifact())
        members[0] = ("version", record)
        reader = ArtifactReader(io.BytesIO(_join(members)))
        with pytest.raises(FormatError):
            reader.read()
        assert reader.state == ReaderState.AWAITING_VERSION


class TestMemberOrder:
    def test_missing_manifest_in_v2(self, make_artifact):
        members = [m for m in _split(make_artifact()) if m[0] != "manifest"]
        with pytest.raises(FormatError, match="missing its manifest"):
            read_artifact(io.BytesIO(_join(members)))

    def test_manifest_in_v1(self, make_artifact):
        members = _split(make_artifact(version=1))
        members.insert(1, ("manifest", b""))
        with pytest.raises(FormatError, match="not allowed"):
            read_artifact(io.BytesIO(_join(members)))

    def test_missing_header(self, make_artifact):
        members = [m for m in _split(make_artifact()) if m[0] != "header.tar.gz"]
        with pytest.raises(FormatError, match="expected header.tar.gz"):
            read_artifact(io.BytesIO(_join(members)))

    def test_missing_data_archive(self, make_artifact):
        members = [m for m in _split(make_artifact()) if not m[0].startswith("data/")]
        with pytest.raises(FormatError, match="missing data archive"):
            read_artifact(io.BytesIO(_join(members)))

    def test_data_archives_out_of_order(self, make_artifact, make_update):
        raw = make_artifact(updates=[make_update("a.img", b"aaaa"), make_update("b.img", b"bbbb")])
        members = _split(raw)
        members[-2], members[-1] = members[-1], members[-2]
        with pytest.raises(FormatError, match="expected data archive 0000"):
            read_artifact(io.BytesIO(_join(members)))

    def test_trailing_member(self, make_artifact):
        members = _split(make_artifact())
        members.append(("data/0001.tar.gz", b""))
        with pytest.raises(FormatError, match="unexpected member"):
            read_artifact(io.BytesIO(_join(members)))

    def test_truncated_artifact(self, make_artifact):
        raw = make_artifact()
        # Cut inside the data archive, past its tar header block.
        cut = raw.rfind(b"data/0000.tar.gz") + 512 + 20
        with pytest.raises(FormatError):
            read_artifact(io.BytesIO(raw[:cut]))


class TestPayloadDispatch:
    def test_unregistered_type(self, update_file):
        sink = io.BytesIO()
        ArtifactWriter(sink).write(["dev"], "delta-1", [_DeltaHandler(update_file)])
        with pytest.raises(UnsupportedPayloadType, match="delta-update"):
            read_artifact(io.BytesIO(sink.getvalue()))

    def test_registered_custom_type(self, update_file):
        sink = io.BytesIO()
        ArtifactWriter(sink).write(["dev"], "delta-1", [_DeltaHandler(update_file)])
        registry = HandlerRegistry([rootfs_installer(), _DeltaHandler()])
        result = read_artifact(io.BytesIO(sink.getvalue()), handlers=registry)
        assert result.payloads[0].type_tag == "delta-update"

    def test_header_file_list_mismatch(self, update_file):
        sink = io.BytesIO()
        ArtifactWriter(sink).write(["dev"], "r1", [_FilesMismatch(update_file)])
        with pytest.raises(FormatError, match="does not match"):
            read_artifact(io.BytesIO(sink.getvalue()))
