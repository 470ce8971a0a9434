"""Error taxonomy for the artifact codec.

Structural errors (everything except ``SignatureError``) are fatal and
abort the current read or write.  Signature problems are captured by the
reader and reported alongside an otherwise complete read, so callers can
tell "well-formed but badly signed" apart from "corrupt".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mender_artifact.models.artifact import ReadResult, SignatureOutcome


class ArtifactError(RuntimeError):
    """Base class for every error raised by the codec.

    ``signature`` is filled in by the reader when a structural error is
    raised after the signature was already evaluated.
    """

    signature: SignatureOutcome | None = None


class FormatError(ArtifactError):
    """Raised on bad or unsupported framing, version or layout."""


class ChecksumMismatch(ArtifactError):
    """Raised when streamed bytes do not hash to the recorded digest."""

    def __init__(self, name: str, expected: str = "", actual: str = "") -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"checksum mismatch for '{name}': expected {expected or '?'}, got {actual or '?'}"
        )


class UnsupportedPayloadType(ArtifactError):
    """Raised when no handler is registered for a payload type tag."""

    def __init__(self, type_tag: str) -> None:
        self.type_tag = type_tag
        super().__init__(f"no handler registered for payload type '{type_tag}'")


class InvalidScriptName(ArtifactError):
    """Raised when a script name is not a recognised lifecycle hook."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"invalid script: {name}")


class VersionConstraintViolation(ArtifactError):
    """Raised before any output is produced when write inputs are invalid."""


class UnsignableVersion(VersionConstraintViolation):
    """Raised when asked to sign an artifact whose version has no signatures."""


class AlreadySigned(ArtifactError):
    """Raised when re-signing a signed artifact without forcing it."""


class SignatureError(ArtifactError):
    """Raised by verifiers when a signature does not match the manifest."""


class SignatureValidationError(ArtifactError):
    """Raised by ``validate`` for a well-formed artifact with a bad signature."""

    def __init__(self, message: str, result: ReadResult) -> None:
        self.result = result
        self.signature = result.signature
        super().__init__(message)


class RepackError(ArtifactError):
    """Raised when an artifact cannot be decomposed for repacking."""
