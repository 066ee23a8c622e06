"""Tests for mockscribe.transcribe.orchestrator module."""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
import pytest

from mockscribe.audio.asset import AudioAsset, UploadLimits
from mockscribe.audio.signal import PCMBuffer, SignalNormalizer
from mockscribe.config import ScribeConfig
from mockscribe.exceptions import (
    AllBackendsFailed,
    AudioTooLargeError,
    BackendTimeoutError,
    BadOutputError,
    ConfigError,
    DecodeError,
    UnavailableError,
    UnsupportedMediaTypeError,
)
from mockscribe.transcribe.backends import (
    LocalInProcessBackend,
    LocalSubprocessBackend,
    RemoteAPIBackend,
    TranscriptionBackend,
)
from mockscribe.transcribe.orchestrator import (
    FallbackOrchestrator,
    build_backends,
    create_orchestrator_from_config,
)
from mockscribe.transcribe.types import AttemptOutcome, BackendKind, Transcript


class FakeBackend(TranscriptionBackend):
    """Scripted backend: returns text, or raises the given exception."""

    kind = BackendKind.REMOTE

    def __init__(
        self,
        name: str,
        outcome: str | BaseException,
        *,
        requires_pcm: bool = False,
        timeout: float = 5.0,
        delay: float = 0.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.name = name
        self.outcome = outcome
        self.requires_pcm = requires_pcm
        self.delay = delay
        self.received: list[Any] = []

    @property
    def calls(self) -> int:
        return len(self.received)

    async def transcribe(self, audio):
        self.received.append(audio)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return Transcript(text=self.outcome)


class SilenceAwareBackend(FakeBackend):
    """Returns empty text for silent PCM, like a real model does."""

    async def transcribe(self, audio):
        self.received.append(audio)
        return Transcript(text="" if audio.is_silent else "speech")


def _orchestrator(*backends: TranscriptionBackend, **kwargs: Any) -> FallbackOrchestrator:
    kwargs.setdefault("normalizer", SignalNormalizer(ffmpeg_path=""))
    return FallbackOrchestrator(list(backends), **kwargs)


class TestFallbackSequence:
    @pytest.mark.asyncio
    async def test_falls_through_to_success(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(
            FakeBackend("remote", UnavailableError("no network")),
            FakeBackend("subprocess", BackendTimeoutError("too slow")),
            FakeBackend("in_process", "hello"),
        )

        run = await orchestrator.run(sine_asset)

        assert run.transcript.text == "hello"
        assert run.transcript.backend == "in_process"
        assert [a.backend for a in run.attempts] == ["remote", "subprocess", "in_process"]
        assert [a.outcome for a in run.attempts] == [
            AttemptOutcome.FAILURE,
            AttemptOutcome.TIMEOUT,
            AttemptOutcome.SUCCESS,
        ]
        assert run.attempts[0].error_type == "UnavailableError"
        assert run.attempts[1].error_type == "BackendTimeoutError"

    @pytest.mark.asyncio
    async def test_same_result_on_repeat(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(
            FakeBackend("remote", UnavailableError("no network")),
            FakeBackend("in_process", "hello"),
        )
        first = await orchestrator.run(sine_asset)
        second = await orchestrator.run(sine_asset)
        assert first.transcript.text == second.transcript.text == "hello"
        assert len(first.attempts) == len(second.attempts) == 2

    @pytest.mark.asyncio
    async def test_short_circuits_on_first_success(self, sine_asset: AudioAsset) -> None:
        first = FakeBackend("remote", "from remote")
        second = FakeBackend("subprocess", "from subprocess")
        third = FakeBackend("in_process", "from in-process")

        transcript = await _orchestrator(first, second, third).transcribe(sine_asset)

        assert transcript.text == "from remote"
        assert (first.calls, second.calls, third.calls) == (1, 0, 0)

    @pytest.mark.asyncio
    async def test_empty_text_is_a_failure(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(
            FakeBackend("remote", "   "),
            FakeBackend("subprocess", "real words"),
        )
        run = await orchestrator.run(sine_asset)

        assert run.transcript.text == "real words"
        assert run.attempts[0].outcome == AttemptOutcome.FAILURE
        assert run.attempts[0].error_type == "BadOutputError"

    @pytest.mark.asyncio
    async def test_empty_text_and_network_error_look_the_same(
        self, sine_asset: AudioAsset
    ) -> None:
        empty = await _orchestrator(FakeBackend("remote", ""), FakeBackend("b", "ok")).run(
            sine_asset
        )
        unreachable = await _orchestrator(
            FakeBackend("remote", UnavailableError("refused")), FakeBackend("b", "ok")
        ).run(sine_asset)

        assert empty.transcript.text == unreachable.transcript.text
        assert empty.attempts[0].outcome == unreachable.attempts[0].outcome


class TestExhaustion:
    @pytest.mark.asyncio
    async def test_all_failed(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(
            FakeBackend("remote", UnavailableError("no key")),
            FakeBackend("subprocess", BadOutputError("garbage", detail="Traceback: boom")),
            FakeBackend("in_process", ""),
        )

        with pytest.raises(AllBackendsFailed) as exc_info:
            await orchestrator.transcribe(sine_asset)

        attempts = exc_info.value.attempts
        assert len(attempts) == 3
        assert all(a.outcome == AttemptOutcome.FAILURE for a in attempts)
        assert "Traceback: boom" in attempts[1].error
        report = exc_info.value.to_dict()
        assert report["message"] == "Failed to transcribe audio. Please try again."
        assert [a["backend"] for a in report["attempts"]] == ["remote", "subprocess", "in_process"]

    @pytest.mark.asyncio
    async def test_no_backends(self, sine_asset: AudioAsset) -> None:
        with pytest.raises(AllBackendsFailed, match="no backends configured"):
            await _orchestrator().transcribe(sine_asset)

    @pytest.mark.asyncio
    async def test_silent_audio_exhausts_without_crashing(self, silent_asset: AudioAsset) -> None:
        subprocess_backend = SilenceAwareBackend("subprocess", "", requires_pcm=True)
        in_process_backend = SilenceAwareBackend("in_process", "", requires_pcm=True)

        with pytest.raises(AllBackendsFailed) as exc_info:
            await _orchestrator(subprocess_backend, in_process_backend).transcribe(silent_asset)

        assert len(exc_info.value.attempts) == 2
        pcm = subprocess_backend.received[0]
        assert isinstance(pcm, PCMBuffer)
        assert not np.any(np.isnan(pcm.samples))
        assert float(np.max(np.abs(pcm.samples))) == 0.0


class TestValidation:
    @pytest.mark.asyncio
    async def test_oversize_upload_never_reaches_backends(self) -> None:
        backend = FakeBackend("remote", "hello")
        asset = AudioAsset(data=b"\0" * (25 * 1024 * 1024 + 1), mime_type="audio/wav")

        with pytest.raises(AudioTooLargeError):
            await _orchestrator(backend).transcribe(asset)
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_type_never_reaches_backends(self, sine_wav: bytes) -> None:
        backend = FakeBackend("remote", "hello")
        asset = AudioAsset(data=sine_wav, mime_type="video/mp4")

        with pytest.raises(UnsupportedMediaTypeError):
            await _orchestrator(backend).transcribe(asset)
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_custom_limits(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(FakeBackend("remote", "x"), limits=UploadLimits(max_bytes=10))
        with pytest.raises(AudioTooLargeError):
            await orchestrator.transcribe(sine_asset)


class TestNormalization:
    @pytest.mark.asyncio
    async def test_pcm_built_once_and_shared(self, sine_asset: AudioAsset) -> None:
        remote = FakeBackend("remote", UnavailableError("down"))
        first = FakeBackend("subprocess", BadOutputError("bad"), requires_pcm=True)
        second = FakeBackend("in_process", "ok", requires_pcm=True)

        await _orchestrator(remote, first, second).run(sine_asset)

        assert remote.received[0] is sine_asset
        assert isinstance(first.received[0], PCMBuffer)
        assert first.received[0] is second.received[0]
        assert first.received[0].sample_rate == 16000

    @pytest.mark.asyncio
    async def test_no_decode_when_remote_succeeds(self) -> None:
        remote = FakeBackend("remote", "ok")
        local = FakeBackend("in_process", "ok", requires_pcm=True)
        asset = AudioAsset(data=b"undecodable", mime_type="audio/mpeg")

        transcript = await _orchestrator(remote, local).transcribe(asset)
        assert transcript.text == "ok"

    @pytest.mark.asyncio
    async def test_decode_error_is_terminal(self) -> None:
        remote = FakeBackend("remote", UnavailableError("down"))
        local = FakeBackend("in_process", "ok", requires_pcm=True)
        fallback = FakeBackend("after", "ok")
        asset = AudioAsset(data=b"undecodable", mime_type="audio/wav")

        with pytest.raises(DecodeError):
            await _orchestrator(remote, local, fallback).transcribe(asset)
        assert local.calls == 0
        assert fallback.calls == 0

    @pytest.mark.asyncio
    async def test_decode_error_from_backend_propagates(self, sine_asset: AudioAsset) -> None:
        broken = FakeBackend("remote", DecodeError("corrupt"))
        fallback = FakeBackend("after", "ok")

        with pytest.raises(DecodeError):
            await _orchestrator(broken, fallback).transcribe(sine_asset)
        assert fallback.calls == 0


class TestIsolation:
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self, sine_asset: AudioAsset) -> None:
        orchestrator = _orchestrator(
            FakeBackend("remote", RuntimeError("segfault-ish")),
            FakeBackend("subprocess", "recovered"),
        )
        run = await orchestrator.run(sine_asset)

        assert run.transcript.text == "recovered"
        assert run.attempts[0].error_type == "RuntimeError"
        assert run.attempts[0].error == "segfault-ish"

    @pytest.mark.asyncio
    async def test_hung_backend_times_out(self, sine_asset: AudioAsset) -> None:
        hung = FakeBackend("remote", "never", timeout=0.05, delay=5.0)
        orchestrator = _orchestrator(hung, FakeBackend("subprocess", "fast"), attempt_grace=0.05)

        run = await orchestrator.run(sine_asset)

        assert run.transcript.text == "fast"
        assert run.attempts[0].outcome == AttemptOutcome.TIMEOUT
        assert run.attempts[0].elapsed_seconds < 2.0

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_independent(
        self, sine_asset: AudioAsset, silent_asset: AudioAsset
    ) -> None:
        backend = SilenceAwareBackend("in_process", "", requires_pcm=True)
        fallback = FakeBackend("subprocess", "fallback text")
        orchestrator = _orchestrator(backend, fallback)

        speech, silence = await asyncio.gather(
            orchestrator.run(sine_asset), orchestrator.run(silent_asset)
        )

        assert speech.transcript.text == "speech"
        assert len(speech.attempts) == 1
        assert silence.transcript.text == "fallback text"
        assert len(silence.attempts) == 2


class TestBuildBackends:
    def test_default_order(self) -> None:
        backends = build_backends(ScribeConfig())
        assert [type(b) for b in backends] == [
            RemoteAPIBackend,
            LocalSubprocessBackend,
            LocalInProcessBackend,
        ]
        assert [b.name for b in backends] == ["remote", "subprocess", "in_process"]

    def test_names_override_order(self) -> None:
        backends = build_backends(ScribeConfig(), ["in_process", "remote"])
        assert [b.name for b in backends] == ["in_process", "remote"]

    def test_unknown_name(self) -> None:
        with pytest.raises(ConfigError):
            build_backends(ScribeConfig(), ["telepathy"])

    def test_config_values_flow_through(self) -> None:
        config = ScribeConfig(
            remote={"url": "https://stt.example.test/v1", "timeout": 12.0},
            in_process={"model": "tiny.en", "beam_size": 3},
            seconds_per_word=0.5,
        )
        remote, _, in_process = build_backends(config)
        assert remote.url == "https://stt.example.test/v1"
        assert remote.timeout == 12.0
        assert in_process.model_name == "tiny.en"
        assert in_process.beam_size == 3
        assert remote.assembler.seconds_per_word == 0.5

    def test_create_from_config(self) -> None:
        config = ScribeConfig(max_upload_bytes=1024, backend_order=["subprocess"])
        orchestrator = create_orchestrator_from_config(config)

        assert [b.name for b in orchestrator.backends] == ["subprocess"]
        assert orchestrator.limits.max_bytes == 1024
        assert orchestrator.normalizer.target_rate == 16000
