"""Modify an artifact's payload filesystem, or a bare image, then repack.

Mounting an image is an external capability (``ImageMounter``); this
module only edits files below the mount point it is handed and drives
the unpack / edit / repack sequence.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from mender_artifact.core.errors import ArtifactError, RepackError
from mender_artifact.core.layout import is_plain_name
from mender_artifact.core.output import atomic_output
from mender_artifact.core.repack import repack, unpack_payload
from mender_artifact.core.validate import read_artifact
from mender_artifact.core.writer import Signer

logger = logging.getLogger(__name__)

ARTIFACT_INFO = Path("etc/mender/artifact_info")
MENDER_CONF = Path("etc/mender/mender.conf")
SERVER_CERT = Path("etc/mender/server.crt")
VERIFY_KEY = Path("etc/mender/artifact-verify-key.pem")


class ImageMounter(Protocol):
    """Mounts a filesystem image and yields its root directory."""

    def mount(self, image: Path) -> AbstractContextManager[Path]: ...


class ModifyRequest(BaseModel):
    """Requested edits; unset fields are left alone."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    server_uri: str | None = None
    server_cert: Path | None = None
    verification_key: Path | None = None
    tenant_token: Path | None = None

    @property
    def touches_filesystem(self) -> bool:
        """Whether any edit other than the artifact name was requested."""
        return any(
            v is not None
            for v in (self.server_uri, self.server_cert, self.verification_key, self.tenant_token)
        )

    @property
    def empty(self) -> bool:
        return self.name is None and not self.touches_filesystem


# ---------------------------------------------------------------------------
# Filesystem edits below a mount point
# ---------------------------------------------------------------------------


def modify_name(root: Path, name: str) -> None:
    target = root / ARTIFACT_INFO
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(f"artifact_name={name}", encoding="utf-8")


def modify_conf_var(root: Path, key: str, value: Any) -> None:
    target = root / MENDER_CONF
    conf: dict[str, Any] = {}
    if target.exists():
        conf = json.loads(target.read_text(encoding="utf-8"))
        if not isinstance(conf, dict):
            raise RepackError(f"{MENDER_CONF} is not a JSON object")
    conf[key] = value
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(conf), encoding="utf-8")


def replace_file(root: Path, relpath: Path, source: Path) -> None:
    target = root / relpath
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)


def apply_edits(root: Path, request: ModifyRequest) -> list[str]:
    """Apply *request* below *root*; return a description of each edit."""
    done: list[str] = []
    if request.name is not None:
        modify_name(root, request.name)
        done.append(f"artifact name -> {request.name}")
    if request.server_uri is not None:
        modify_conf_var(root, "ServerURL", request.server_uri)
        done.append(f"server URI -> {request.server_uri}")
    if request.server_cert is not None:
        replace_file(root, SERVER_CERT, request.server_cert)
        done.append("server certificate replaced")
    if request.verification_key is not None:
        replace_file(root, VERIFY_KEY, request.verification_key)
        done.append("verification key replaced")
    if request.tenant_token is not None:
        token = request.tenant_token.read_text(encoding="utf-8").strip()
        modify_conf_var(root, "TenantToken", token)
        done.append("tenant token replaced")
    for edit in done:
        logger.info("Modified image: %s.", edit)
    return done


# ---------------------------------------------------------------------------
# Artifact / image dispatch
# ---------------------------------------------------------------------------


def is_artifact(path: Path) -> bool:
    """True when *path* parses as a structurally valid artifact."""
    try:
        with path.open("rb") as fh:
            read_artifact(fh)
    except ArtifactError as exc:
        logger.debug("%s is not an artifact: %s", path, exc)
        return False
    return True


def modify_artifact(
    path: Path | str,
    request: ModifyRequest,
    mounter: ImageMounter | None = None,
    signer: Signer | None = None,
    *,
    compress: bool = True,
    scratch_dir: Path | None = None,
) -> list[str]:
    """Modify *path* in place, artifact or bare image.

    For an artifact the payload is unpacked to scratch storage, edited
    through *mounter* when filesystem edits were requested, and the
    artifact is repacked at the same path with the optional new name and
    signing key.  A name-only change of an artifact needs no mounter; it
    then renames the artifact header only, and the report says so.
    """
    path = Path(path)
    if request.empty and signer is None:
        raise RepackError("nothing to modify")

    if not is_artifact(path):
        if signer is not None:
            raise RepackError(f"{path} is not an artifact; it can not be signed")
        if mounter is None:
            raise RepackError("editing an image filesystem needs an image mounter")
        with mounter.mount(path) as root:
            return apply_edits(root, request)

    if request.touches_filesystem and mounter is None:
        raise RepackError("editing an image filesystem needs an image mounter")

    done: list[str] = []
    with tempfile.TemporaryDirectory(prefix="mender-modify-", dir=scratch_dir) as tmp:
        unpacked = Path(tmp) / "payload"
        with path.open("rb") as src, unpacked.open("wb") as out:
            source = unpack_payload(src, out)
        image_name = source.payloads[0].files[0].name
        if not is_plain_name(image_name):
            raise RepackError(f"refusing to unpack payload file '{image_name}'")
        image = unpacked.rename(Path(tmp) / image_name)

        if mounter is not None:
            with mounter.mount(image) as root:
                done.extend(apply_edits(root, request))
        elif request.name is not None:
            logger.warning(
                "No image mounter: %s in the payload still names the old artifact.",
                ARTIFACT_INFO,
            )
            done.append(
                f"artifact header name -> {request.name} "
                f"({ARTIFACT_INFO} in the image not updated)"
            )

        with path.open("rb") as src, atomic_output(path) as out:
            repack(
                src,
                out,
                signer=signer,
                new_name=request.name,
                data_file=image,
                compress=compress,
                scratch_dir=scratch_dir,
            )
    if signer is not None:
        done.append("artifact signed")
    logger.info("Repacked modified artifact %s.", path)
    return done
