"""Adversarial tests — version constraints and the re-sign guard.

Constraint violations are raised before a single byte reaches the
destination.
"""

from __future__ import annotations

import io

import pytest

from mender_artifact.core.errors import (
    AlreadySigned,
    RepackError,
    UnsignableVersion,
    VersionConstraintViolation,
)
from mender_artifact.core.repack import repack, sign_artifact
from mender_artifact.core.scripts import Scripts
from mender_artifact.core.writer import ArtifactWriter
from mender_artifact.handlers.rootfs import RootfsV1


class TestWriterConstraints:
    def test_v1_with_scripts_and_signer(self, update_file, make_script, keypair):
        signer, _ = keypair
        scripts = Scripts()
        scripts.add(make_script())
        sink = io.BytesIO()
        with pytest.raises(VersionConstraintViolation):
            ArtifactWriter(sink, signer).write(
                ["dev"], "r1", [RootfsV1(update_file)], scripts, version=1
            )
        assert sink.getvalue() == b""


class TestSignGuard:
    def test_v1_is_unsignable(self, make_artifact, keypair):
        signer, _ = keypair
        dest = io.BytesIO()
        with pytest.raises(UnsignableVersion, match="Can not sign v1 artifact"):
            sign_artifact(io.BytesIO(make_artifact(version=1)), dest, signer)
        assert dest.getvalue() == b""

    def test_unsignable_is_a_version_constraint(self):
        assert issubclass(UnsignableVersion, VersionConstraintViolation)

    def test_already_signed(self, make_artifact, keypair):
        signer, _ = keypair
        dest = io.BytesIO()
        with pytest.raises(AlreadySigned):
            sign_artifact(io.BytesIO(make_artifact(signer=signer)), dest, signer)
        assert dest.getvalue() == b""

    def test_force_allows_resign(self, make_artifact, keypair):
        signer, _ = keypair
        dest = io.BytesIO()
        result = sign_artifact(io.BytesIO(make_artifact(signer=signer)), dest, signer, force=True)
        assert result.signed
        assert dest.getvalue()

    def test_repack_v1_with_signer_rejected(self, make_artifact, keypair):
        signer, _ = keypair
        dest = io.BytesIO()
        with pytest.raises(VersionConstraintViolation):
            repack(io.BytesIO(make_artifact(version=1)), dest, signer=signer)
        assert dest.getvalue() == b""


class TestRepackConstraints:
    def test_replacement_needs_single_payload(self, make_artifact, make_update, tmp_dir):
        raw = make_artifact(updates=[make_update("a.img", b"a"), make_update("b.img", b"b")])
        replacement = tmp_dir / "new.img"
        replacement.write_bytes(b"new")
        with pytest.raises(RepackError, match="single-payload"):
            repack(io.BytesIO(raw), io.BytesIO(), data_file=replacement)
