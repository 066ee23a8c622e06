"""
mockscribe.transcribe.backends - Concrete transcription strategies.
"""

from __future__ import annotations

from mockscribe.transcribe.backends.base import AudioInput, TranscriptionBackend
from mockscribe.transcribe.backends.in_process import LocalInProcessBackend
from mockscribe.transcribe.backends.remote import RemoteAPIBackend
from mockscribe.transcribe.backends.subprocess_model import LocalSubprocessBackend

__all__ = [
    "AudioInput",
    "TranscriptionBackend",
    "LocalInProcessBackend",
    "LocalSubprocessBackend",
    "RemoteAPIBackend",
]
