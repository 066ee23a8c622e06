"""
mockscribe.transcribe.types - Transcript and attempt records.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class BackendKind(str, enum.Enum):
    """Closed set of transcription strategies."""

    REMOTE = "remote"
    SUBPROCESS = "subprocess"
    IN_PROCESS = "in_process"


class AttemptOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass(slots=True)
class TranscriptSegment:
    """A timestamped span of transcript text."""

    text: str
    start: float
    end: float

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start": self.start, "end": self.end}


@dataclass(slots=True)
class Transcript:
    """Canonical transcript.

    ``segments`` may be empty when a backend only supplied flat text;
    ``text`` is always populated for a successful transcription.
    """

    text: str
    segments: list[TranscriptSegment] = field(default_factory=list)
    backend: str | None = None
    language: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON shape consumed by the route layer."""
        return {
            "text": self.text,
            "chunks": [segment.to_dict() for segment in self.segments],
        }


@dataclass(slots=True)
class BackendAttempt:
    """One backend try inside the fallback chain."""

    backend: str
    outcome: AttemptOutcome
    error: str | None = None
    error_type: str | None = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "outcome": self.outcome.value,
            "error": self.error,
            "error_type": self.error_type,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass(slots=True)
class TranscriptionRun:
    """Transcript plus the attempt log that produced it."""

    transcript: Transcript
    attempts: list[BackendAttempt]
