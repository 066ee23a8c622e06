"""
mockscribe.transcribe.backends.base - Transcription backend interface.
"""

from __future__ import annotations

import abc
from typing import Union

from mockscribe.audio.asset import AudioAsset
from mockscribe.audio.signal import PCMBuffer
from mockscribe.transcribe.assembler import TranscriptAssembler
from mockscribe.transcribe.types import BackendKind, Transcript

AudioInput = Union[AudioAsset, PCMBuffer]


class TranscriptionBackend(abc.ABC):
    """One strategy for turning audio into a Transcript.

    Implementations raise UnavailableError, BackendTimeoutError or
    BadOutputError, and release every resource they acquire before
    returning or raising.
    """

    name: str
    kind: BackendKind
    requires_pcm: bool = False

    def __init__(self, *, timeout: float, assembler: TranscriptAssembler | None = None) -> None:
        self.timeout = timeout
        self.assembler = assembler or TranscriptAssembler()

    @abc.abstractmethod
    async def transcribe(self, audio: AudioInput) -> Transcript:
        """Transcribe raw upload bytes or normalized PCM."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(timeout={self.timeout:g})"
