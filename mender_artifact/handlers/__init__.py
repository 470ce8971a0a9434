"""Payload handlers — caller-supplied capabilities per payload type."""

from mender_artifact.handlers.base import Handler, HandlerRegistry
from mender_artifact.handlers.rootfs import (
    ROOTFS_TYPE,
    RootfsImage,
    RootfsV1,
    RootfsV2,
    new_rootfs,
    rootfs_installer,
)

__all__ = [
    "Handler",
    "HandlerRegistry",
    "ROOTFS_TYPE",
    "RootfsImage",
    "RootfsV1",
    "RootfsV2",
    "new_rootfs",
    "rootfs_installer",
]
