"""Unit tests for the manifest model — canonical bytes and strict parsing."""

from __future__ import annotations

import pytest

from mender_artifact.models.manifest import Manifest, ManifestParseError

A = "a" * 64
B = "b" * 64


class TestManifestBytes:
    def test_lines_sorted_by_path(self):
        manifest = Manifest(entries={"version": A, "header.tar.gz": B})
        assert manifest.to_bytes() == f"{B}  header.tar.gz\n{A}  version\n".encode()

    def test_parse_round_trips_exact_bytes(self):
        raw = f"{B}  data/0000/rootfs.ext4\n{A}  version\n".encode()
        assert Manifest.parse(raw).to_bytes() == raw

    def test_get_missing_is_none(self):
        assert Manifest(entries={"version": A}).get("header.tar.gz") is None


class TestManifestParseErrors:
    """Anything but canonical lines is rejected."""

    @pytest.mark.parametrize(
        "raw",
        [
            b"not-a-digest  version\n",
            f"{A} version\n".encode(),
            f"{A.upper()}  version\n".encode(),
            f"{A}  \n".encode(),
            b"\xff\xfe",
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(ManifestParseError):
            Manifest.parse(raw)

    def test_duplicate_path_rejected(self):
        raw = f"{A}  version\n{B}  version\n".encode()
        with pytest.raises(ManifestParseError, match="duplicate"):
            Manifest.parse(raw)
