"""Crypto bridge — Ed25519 signing and verification of artifact manifests.

Keys are stored as hex text: a 32-byte seed for signing, a 32-byte
verify key for verification.  The signature member of an artifact holds
the hex-encoded 64-byte Ed25519 signature over the raw manifest bytes.

``Signer`` and ``Verifier`` are the concrete signing and verification
capabilities handed to the writer and reader.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

import nacl.signing
from nacl.exceptions import BadSignatureError, CryptoError

from mender_artifact.core.errors import ArtifactError, SignatureError

logger = logging.getLogger(__name__)


class KeyMaterialError(ArtifactError):
    """Raised when key material can not be read or decoded."""


def generate_keypair() -> tuple[str, str]:
    """Generate a signing key-pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_hex, public_key_hex)``
    """
    sk = nacl.signing.SigningKey.generate()
    return sk.encode().hex(), sk.verify_key.encode().hex()


def key_fingerprint(public_key: str) -> str:
    """First 16 hex characters of SHA-256 over the public key text."""
    if not public_key:
        return ""
    return hashlib.sha256(public_key.encode("utf-8")).hexdigest()[:16]


def _decode_key(text: str, what: str) -> bytes:
    try:
        raw = bytes.fromhex(text.strip())
    except ValueError as exc:
        raise KeyMaterialError(f"{what} is not valid hex") from exc
    if len(raw) != 32:
        raise KeyMaterialError(f"{what} must be 32 bytes, got {len(raw)}")
    return raw


class Signer:
    """Signs manifest bytes with an Ed25519 private key (hex seed)."""

    def __init__(self, private_key: str) -> None:
        self._key = nacl.signing.SigningKey(_decode_key(private_key, "private key"))

    @property
    def public_key(self) -> str:
        return self._key.verify_key.encode().hex()

    def sign(self, message: bytes) -> bytes:
        return self._key.sign(message).signature.hex().encode("ascii")


class Verifier:
    """Verifies manifest signatures with an Ed25519 public key (hex).

    Raises ``SignatureError`` for any mismatch or malformed signature.
    """

    def __init__(self, public_key: str) -> None:
        self._key = nacl.signing.VerifyKey(_decode_key(public_key, "public key"))
        self.fingerprint = key_fingerprint(public_key.strip())

    def verify(self, message: bytes, signature: bytes) -> None:
        try:
            sig = bytes.fromhex(signature.decode("ascii").strip())
            self._key.verify(message, sig)
        except BadSignatureError as exc:
            raise SignatureError(
                f"signature does not match key {self.fingerprint}"
            ) from exc
        except (ValueError, CryptoError) as exc:
            # ValueError: non-hex or non-ASCII; CryptoError: wrong length
            raise SignatureError(f"malformed signature: {exc}") from exc


def _read_key_file(path: Path | str) -> str:
    path = Path(path)
    try:
        return path.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as exc:
        raise KeyMaterialError(f"Invalid key path: {path}") from exc


def load_signer(path: Path | str) -> Signer:
    """Build a ``Signer`` from a private key file."""
    signer = Signer(_read_key_file(path))
    logger.debug("Loaded signing key %s.", key_fingerprint(signer.public_key))
    return signer


def load_verifier(path: Path | str) -> Verifier:
    """Build a ``Verifier`` from a public key file."""
    return Verifier(_read_key_file(path))


def write_keypair(prefix: Path | str) -> tuple[Path, Path]:
    """Generate a key-pair and store it as ``<prefix>.key`` / ``<prefix>.pub``."""
    prefix = Path(prefix)
    priv, pub = generate_keypair()
    priv_path = prefix.with_name(prefix.name + ".key")
    pub_path = prefix.with_name(prefix.name + ".pub")
    priv_path.write_text(priv + "\n", encoding="ascii")
    priv_path.chmod(0o600)
    pub_path.write_text(pub + "\n", encoding="ascii")
    logger.info("Generated key-pair %s (fingerprint %s).", prefix, key_fingerprint(pub))
    return priv_path, pub_path
