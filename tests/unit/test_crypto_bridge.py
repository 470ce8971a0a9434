"""Unit tests for the crypto bridge — real Ed25519 via PyNaCl."""

from __future__ import annotations

import stat

import pytest

from mender_artifact.bridge.crypto_bridge import (
    KeyMaterialError,
    Signer,
    Verifier,
    generate_keypair,
    key_fingerprint,
    load_signer,
    load_verifier,
    write_keypair,
)
from mender_artifact.core.errors import SignatureError


class TestGenerateKeypair:
    """Ed25519 key generation must return valid hex-encoded key pairs."""

    def test_hex_lengths(self):
        priv, pub = generate_keypair()
        assert len(priv) == 64
        assert len(pub) == 64
        bytes.fromhex(priv)
        bytes.fromhex(pub)

    def test_pairs_are_unique(self):
        assert generate_keypair() != generate_keypair()

    def test_signer_exposes_matching_public_key(self):
        priv, pub = generate_keypair()
        assert Signer(priv).public_key == pub


class TestSignVerify:
    def test_round_trip(self, keypair):
        signer, verifier = keypair
        verifier.verify(b"manifest", signer.sign(b"manifest"))

    def test_signature_is_hex_text(self, keypair):
        signer, _ = keypair
        sig = signer.sign(b"manifest")
        assert len(bytes.fromhex(sig.decode("ascii"))) == 64

    def test_wrong_message(self, keypair):
        signer, verifier = keypair
        with pytest.raises(SignatureError, match="does not match"):
            verifier.verify(b"other", signer.sign(b"manifest"))

    def test_wrong_key(self, keypair):
        signer, _ = keypair
        _, other_pub = generate_keypair()
        with pytest.raises(SignatureError):
            Verifier(other_pub).verify(b"manifest", signer.sign(b"manifest"))

    @pytest.mark.parametrize("sig", [b"zz", b"abcd", b"\xff\xfe"])
    def test_malformed_signature(self, keypair, sig):
        _, verifier = keypair
        with pytest.raises(SignatureError, match="malformed"):
            verifier.verify(b"manifest", sig)


class TestKeyFiles:
    def test_write_and_load(self, key_files):
        priv_path, pub_path = key_files
        assert priv_path.name == "artifact.key"
        assert pub_path.name == "artifact.pub"
        assert stat.S_IMODE(priv_path.stat().st_mode) == 0o600
        signer = load_signer(priv_path)
        load_verifier(pub_path).verify(b"m", signer.sign(b"m"))

    def test_missing_key_file(self, tmp_dir):
        with pytest.raises(KeyMaterialError, match="Invalid key path"):
            load_signer(tmp_dir / "nope.key")

    @pytest.mark.parametrize("text", ["not hex", "abcd"])
    def test_bad_key_material(self, tmp_dir, text):
        path = tmp_dir / "bad.pub"
        path.write_text(text)
        with pytest.raises(KeyMaterialError):
            load_verifier(path)

    def test_fingerprint(self):
        _, pub = generate_keypair()
        assert len(key_fingerprint(pub)) == 16
        assert key_fingerprint("") == ""

    def test_write_keypair_prefix(self, tmp_dir):
        priv_path, pub_path = write_keypair(tmp_dir / "release")
        assert priv_path == tmp_dir / "release.key"
        assert pub_path == tmp_dir / "release.pub"
