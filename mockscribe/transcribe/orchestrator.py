"""
mockscribe.transcribe.orchestrator - Priority-ordered fallback across backends.

Backends are tried strictly one after another for a request. The first one
to return non-empty text wins; every failure is classified and recorded,
and exhaustion raises AllBackendsFailed with the full attempt log. A
fabricated transcript is never returned.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Any

from mockscribe.audio.asset import AudioAsset, UploadLimits
from mockscribe.audio.signal import PCMBuffer, SignalNormalizer
from mockscribe.exceptions import AllBackendsFailed, BackendError, ConfigError, DecodeError
from mockscribe.logging import logger
from mockscribe.process import SubprocessRunner
from mockscribe.transcribe.assembler import TranscriptAssembler
from mockscribe.transcribe.backends import (
    LocalInProcessBackend,
    LocalSubprocessBackend,
    RemoteAPIBackend,
    TranscriptionBackend,
)
from mockscribe.transcribe.types import (
    AttemptOutcome,
    BackendAttempt,
    Transcript,
    TranscriptionRun,
)

ATTEMPT_GRACE_SECONDS = 5.0


class FallbackOrchestrator:
    """Runs one upload through an ordered list of backends."""

    def __init__(
        self,
        backends: Sequence[TranscriptionBackend],
        *,
        normalizer: SignalNormalizer | None = None,
        limits: UploadLimits | None = None,
        attempt_grace: float = ATTEMPT_GRACE_SECONDS,
    ) -> None:
        self.backends = list(backends)
        self.normalizer = normalizer or SignalNormalizer()
        self.limits = limits or UploadLimits()
        self.attempt_grace = attempt_grace

    async def transcribe(self, asset: AudioAsset) -> Transcript:
        """Transcribe an upload.

        Raises:
            InvalidAudioError: Upload rejected before any backend ran
            DecodeError: Audio unusable; no backend can recover
            AllBackendsFailed: Every backend failed or returned empty text
        """
        run = await self.run(asset)
        return run.transcript

    async def run(self, asset: AudioAsset) -> TranscriptionRun:
        """Like transcribe(), but also return the attempt log."""
        self.limits.enforce(asset)

        attempts: list[BackendAttempt] = []
        pcm: PCMBuffer | None = None

        for backend in self.backends:
            audio: AudioAsset | PCMBuffer = asset
            if backend.requires_pcm:
                if pcm is None:
                    pcm = await self.normalizer.normalize(asset)
                audio = pcm

            attempt, transcript = await self._attempt(backend, audio)
            attempts.append(attempt)
            if transcript is not None:
                logger.info("Transcribed with %s in %.2fs", backend.name, attempt.elapsed_seconds)
                return TranscriptionRun(transcript=transcript, attempts=attempts)

            logger.warning(
                "Backend %s failed (%s): %s",
                backend.name,
                attempt.outcome.value,
                attempt.error,
            )

        logger.error("All %d transcription backends failed", len(attempts))
        raise AllBackendsFailed(attempts)

    async def _attempt(
        self,
        backend: TranscriptionBackend,
        audio: AudioAsset | PCMBuffer,
    ) -> tuple[BackendAttempt, Transcript | None]:
        """Run one backend, converting every failure into an attempt record."""
        started = time.monotonic()

        def record(outcome: AttemptOutcome, error: str | None = None, error_type: str | None = None):
            return BackendAttempt(
                backend=backend.name,
                outcome=outcome,
                error=error,
                error_type=error_type,
                elapsed_seconds=time.monotonic() - started,
            )

        try:
            transcript = await asyncio.wait_for(
                backend.transcribe(audio),
                timeout=backend.timeout + self.attempt_grace,
            )
        except asyncio.TimeoutError:
            return record(
                AttemptOutcome.TIMEOUT,
                f"No result within {backend.timeout + self.attempt_grace:g}s",
                "BackendTimeoutError",
            ), None
        except DecodeError:
            raise
        except BackendError as e:
            error = str(e)
            if e.detail and e.detail not in error:
                error = f"{error} | {e.detail.strip()[-300:]}"
            return record(AttemptOutcome(e.outcome), error, type(e).__name__), None
        except Exception as e:
            logger.exception("Backend %s crashed", backend.name)
            return record(AttemptOutcome.FAILURE, str(e) or repr(e), type(e).__name__), None

        if transcript.is_empty:
            return record(
                AttemptOutcome.FAILURE, "Backend returned empty transcription", "BadOutputError"
            ), None

        if transcript.backend is None:
            transcript.backend = backend.name
        return record(AttemptOutcome.SUCCESS), transcript


def build_backends(
    config: Any,
    names: Sequence[str] | None = None,
    runner: SubprocessRunner | None = None,
) -> list[TranscriptionBackend]:
    """Instantiate backends in priority order from a ScribeConfig.

    Args:
        config: ScribeConfig instance
        names: Override for config.backend_order
        runner: Shared SubprocessRunner for the subprocess backend
    """
    assembler = TranscriptAssembler(config.seconds_per_word)
    backends: list[TranscriptionBackend] = []

    for name in names or config.backend_order:
        if name == "remote":
            cfg = config.remote
            backends.append(
                RemoteAPIBackend(
                    url=cfg.url,
                    api_key_env=cfg.api_key_env,
                    api_key_header=cfg.api_key_header,
                    model=cfg.model,
                    language=cfg.language,
                    timeout=cfg.timeout,
                    assembler=assembler,
                )
            )
        elif name == "subprocess":
            cfg = config.subprocess
            backends.append(
                LocalSubprocessBackend(
                    command=cfg.command,
                    model=cfg.model,
                    language=cfg.language,
                    timeout=cfg.timeout,
                    runner=runner,
                    assembler=assembler,
                )
            )
        elif name == "in_process":
            cfg = config.in_process
            backends.append(
                LocalInProcessBackend(
                    model=cfg.model,
                    models_dir=cfg.models_dir,
                    device=cfg.device,
                    compute_type=cfg.compute_type,
                    beam_size=cfg.beam_size,
                    language=cfg.language,
                    timeout=cfg.timeout,
                    concurrent_inference=cfg.concurrent_inference,
                    sample_rate=config.target_sample_rate,
                    assembler=assembler,
                )
            )
        else:
            raise ConfigError(f"Unknown backend: {name}")

    return backends


def create_orchestrator_from_config(
    config: Any,
    backend_names: Sequence[str] | None = None,
) -> FallbackOrchestrator:
    """Create a FallbackOrchestrator from a ScribeConfig.

    Args:
        config: ScribeConfig instance
        backend_names: Optional override for the configured backend order

    Returns:
        Configured FallbackOrchestrator
    """
    runner = SubprocessRunner()
    return FallbackOrchestrator(
        build_backends(config, backend_names, runner=runner),
        normalizer=SignalNormalizer(
            target_rate=config.target_sample_rate,
            target_channels=config.target_channels,
            runner=runner,
        ),
        limits=UploadLimits(
            max_bytes=config.max_upload_bytes,
            supported_mime_types=tuple(config.supported_mime_types),
        ),
    )
