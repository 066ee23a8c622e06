"""
mockscribe.exceptions - Custom exception classes.

All Mockscribe-specific exceptions inherit from ScribeError. Backend
failures inherit from BackendError so the orchestrator can classify them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mockscribe.transcribe.types import BackendAttempt


class ScribeError(Exception):
    """Base exception for all Mockscribe errors."""

    pass


class ConfigError(ScribeError):
    """Configuration loading or validation error."""

    pass


class InvalidAudioError(ScribeError):
    """Upload rejected before any decode work."""

    pass


class UnsupportedMediaTypeError(InvalidAudioError):
    """Declared MIME type is not in the supported set."""

    def __init__(self, mime_type: str, supported: tuple[str, ...] | list[str]):
        self.mime_type = mime_type
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported audio type '{mime_type}'. Please upload a WAV or MP3 file."
        )


class AudioTooLargeError(InvalidAudioError):
    """Upload exceeds the configured maximum size."""

    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(
            f"File too large ({size} bytes). Maximum size is {max_bytes // (1024 * 1024)}MB."
        )


class EmptyAudioError(InvalidAudioError):
    """Upload contains no bytes."""

    pass


class DecodeError(ScribeError):
    """Audio could not be decoded. Terminal: no backend can recover."""

    pass


class BackendError(ScribeError):
    """A single transcription backend failed."""

    outcome = "failure"

    def __init__(self, message: str, backend: str | None = None, detail: str | None = None):
        self.backend = backend
        self.detail = detail
        super().__init__(message)


class UnavailableError(BackendError):
    """Backend not reachable, configured, or installed."""

    pass


class BackendTimeoutError(BackendError):
    """Backend exceeded its wall-clock budget."""

    outcome = "timeout"


class BadOutputError(BackendError):
    """Backend returned an empty or unparsable result."""

    pass


class SpawnError(UnavailableError):
    """Child process could not be started."""

    pass


class ProcessTimeoutError(BackendTimeoutError):
    """Child process was killed after exceeding its timeout.

    Partial output is kept for diagnostics only and must not be parsed.
    """

    def __init__(
        self,
        message: str,
        pid: int | None = None,
        stdout: bytes = b"",
        stderr: bytes = b"",
        backend: str | None = None,
    ):
        self.pid = pid
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message, backend=backend, detail=stderr.decode("utf-8", "replace"))


class ProcessExitError(BadOutputError):
    """Child process exited with a non-zero code."""

    def __init__(self, exit_code: int, stderr: str, backend: str | None = None):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Process exited with code {exit_code}: {stderr.strip()[-500:]}",
            backend=backend,
            detail=stderr,
        )


class AllBackendsFailed(ScribeError):
    """Every backend in the fallback chain failed."""

    def __init__(self, attempts: list[BackendAttempt]):
        self.attempts = list(attempts)
        if self.attempts:
            summary = "; ".join(
                f"{a.backend}: {a.outcome.value}" + (f" ({a.error})" if a.error else "")
                for a in self.attempts
            )
        else:
            summary = "no backends configured"
        super().__init__(f"Transcription failed with every backend: {summary}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Failed to transcribe audio. Please try again.",
            "attempts": [a.to_dict() for a in self.attempts],
        }


class DependencyError(ScribeError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")
