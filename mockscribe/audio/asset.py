"""
mockscribe.audio.asset - Uploaded audio and upload limits.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from mockscribe.exceptions import (
    AudioTooLargeError,
    EmptyAudioError,
    UnsupportedMediaTypeError,
)

DEFAULT_MAX_BYTES = 25 * 1024 * 1024

_EXTENSION_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
}


@dataclass(slots=True)
class AudioAsset:
    """Raw uploaded audio: opaque bytes plus declared MIME type."""

    data: bytes
    mime_type: str
    filename: str = "audio"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def base_mime_type(self) -> str:
        """MIME type without parameters, e.g. 'audio/wav;codecs=1' -> 'audio/wav'."""
        return self.mime_type.split(";", 1)[0].strip().lower()

    @property
    def suffix(self) -> str:
        suffix = Path(self.filename).suffix
        if suffix:
            return suffix.lower()
        subtype = self.base_mime_type.partition("/")[2]
        return f".{subtype}" if subtype else ".bin"

    @classmethod
    def from_path(cls, path: Path, mime_type: str | None = None) -> AudioAsset:
        """Read an audio file from disk, guessing its MIME type from the extension."""
        if mime_type is None:
            mime_type = _EXTENSION_TYPES.get(path.suffix.lower())
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(data=path.read_bytes(), mime_type=mime_type, filename=path.name)


@dataclass(slots=True)
class UploadLimits:
    max_bytes: int = DEFAULT_MAX_BYTES
    supported_mime_types: Sequence[str] = (
        "audio/wav",
        "audio/x-wav",
        "audio/wave",
        "audio/mp3",
        "audio/mpeg",
    )

    def enforce(self, asset: AudioAsset) -> None:
        """Reject an asset before any decode work.

        Raises:
            UnsupportedMediaTypeError: MIME type not in the supported set
            AudioTooLargeError: Asset larger than max_bytes
            EmptyAudioError: Asset has no bytes
        """
        if asset.base_mime_type not in self.supported_mime_types:
            raise UnsupportedMediaTypeError(asset.mime_type, list(self.supported_mime_types))
        if asset.size > self.max_bytes:
            raise AudioTooLargeError(asset.size, self.max_bytes)
        if asset.size == 0:
            raise EmptyAudioError("Audio file is empty")
