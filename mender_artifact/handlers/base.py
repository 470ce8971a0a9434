"""Handler capability and the per-read handler registry.

A handler streams one payload type in (``install``) and out
(``compose``).  Handler instances belong to the caller; the codec only
borrows them for the duration of one read or write.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, BinaryIO

from mender_artifact.core.errors import UnsupportedPayloadType
from mender_artifact.core.hasher import canonical_json_bytes
from mender_artifact.models.artifact import DataFile

if TYPE_CHECKING:
    from mender_artifact.core.writer import DataArchiveSink

logger = logging.getLogger(__name__)


class Handler(ABC):
    """One payload type: declares its tag, installs and composes data.

    Subclasses set ``type_tag`` and ``version`` as class attributes.
    ``version`` is the artifact format version whose header shape the
    handler emits; it is irrelevant when the handler only installs.
    """

    type_tag: str = ""
    version: int = 0

    @abstractmethod
    def install(self, stream: BinaryIO, data_file: DataFile) -> None:
        """Consume exactly ``data_file.size`` bytes from *stream*."""

    @abstractmethod
    def compose(self, sink: DataArchiveSink) -> list[DataFile]:
        """Stream this payload's files into *sink* and return what was written."""

    def header_entries(self, files: list[DataFile]) -> list[tuple[str, bytes]]:
        """Records stored under ``headers/NNNN/`` for this payload.

        Paths are relative to the payload's header directory.
        """
        return [
            ("files", canonical_json_bytes({"files": [f.name for f in files]})),
            ("type-info", canonical_json_bytes({"type": self.type_tag})),
            ("meta-data", b""),
        ]


class HandlerRegistry:
    """Handlers keyed by payload type tag, registered before reading.

    A missing registration is an error path, never a silent default.
    """

    def __init__(self, handlers: list[Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: Handler) -> None:
        if not handler.type_tag:
            raise ValueError("handler must declare a type tag")
        if handler.type_tag in self._handlers:
            logger.info("Replacing handler for payload type '%s'.", handler.type_tag)
        self._handlers[handler.type_tag] = handler

    def get(self, type_tag: str) -> Handler:
        try:
            return self._handlers[type_tag]
        except KeyError:
            raise UnsupportedPayloadType(type_tag) from None

    def __contains__(self, type_tag: object) -> bool:
        return type_tag in self._handlers

    @property
    def type_tags(self) -> list[str]:
        return sorted(self._handlers)
