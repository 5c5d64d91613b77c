"""Immutable request model handed from transports to the engine.

Transports (HTTP, CLI) build one `AgentRequest` per user turn. The engine never
mutates it; derived state lives in the session scratchpad.
"""

import mimetypes
from dataclasses import dataclass

DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


def normalize_media_type(media_type: str | None, name: str | None = None) -> str:
    """Lower-case a declared media type and drop parameters.

    Falls back to a guess from the file name when no type was declared, and to
    `application/octet-stream` when neither yields anything.
    """
    cleaned = (media_type or "").split(";", 1)[0].strip().lower()
    if cleaned:
        return cleaned

    if name:
        guessed, _ = mimetypes.guess_type(name)
        if guessed:
            return guessed.lower()

    return "application/octet-stream"


@dataclass(frozen=True)
class UploadedFile:
    """Raw uploaded document with its declared metadata."""

    data: bytes
    media_type: str
    name: str | None = None

    @classmethod
    def from_upload(
        cls,
        data: bytes,
        media_type: str | None,
        name: str | None = None,
    ) -> "UploadedFile":
        return cls(data=data, media_type=normalize_media_type(media_type, name), name=name)


@dataclass(frozen=True)
class AgentRequest:
    """One user turn: optional free text plus an optional document."""

    text: str | None = None
    file: UploadedFile | None = None

    @property
    def message(self) -> str:
        return (self.text or "").strip()

    @property
    def media_type(self) -> str | None:
        return self.file.media_type if self.file else None
