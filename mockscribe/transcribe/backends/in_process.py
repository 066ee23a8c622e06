"""
mockscribe.transcribe.backends.in_process - faster-whisper inside this process.

The model is loaded once per (model, device, compute_type, models_dir) and
shared by every request. Concurrent first calls coalesce on a per-key lock:
one thread loads, the others block until it finishes. Inference is
serialized on the loaded handle unless ``concurrent_inference`` is set.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from mockscribe.audio.asset import AudioAsset
from mockscribe.audio.signal import normalize
from mockscribe.exceptions import BackendTimeoutError, BadOutputError, UnavailableError
from mockscribe.logging import logger
from mockscribe.transcribe.assembler import TranscriptAssembler
from mockscribe.transcribe.backends.base import AudioInput, TranscriptionBackend
from mockscribe.transcribe.types import BackendKind, Transcript


@dataclass
class LoadedModel:
    model: Any
    lock: threading.Lock = field(default_factory=threading.Lock)


class ModelCache:
    """Once-per-key lazy model loader.

    A failed load caches nothing, so the next caller retries.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._key_locks: dict[Hashable, threading.Lock] = {}
        self._entries: dict[Hashable, LoadedModel] = {}

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> LoadedModel:
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        with self._guard:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = LoadedModel(model=loader())
                self._entries[key] = entry
        return entry

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()
            self._key_locks.clear()


shared_model_cache = ModelCache()


class LocalInProcessBackend(TranscriptionBackend):
    """Runs faster-whisper on normalized PCM in a worker thread."""

    name = "in_process"
    kind = BackendKind.IN_PROCESS
    requires_pcm = True

    def __init__(
        self,
        *,
        model: str = "base.en",
        models_dir: Path = Path("models"),
        device: str = "auto",
        compute_type: str = "int8",
        beam_size: int = 1,
        language: str | None = "en",
        timeout: float = 300.0,
        concurrent_inference: bool = False,
        sample_rate: int = 16000,
        cache: ModelCache | None = None,
        loader: Callable[[], Any] | None = None,
        assembler: TranscriptAssembler | None = None,
    ) -> None:
        super().__init__(timeout=timeout, assembler=assembler)
        self.model_name = model
        self.models_dir = Path(models_dir)
        self.device = device
        self.compute_type = compute_type
        self.beam_size = max(1, beam_size)
        self.language = language
        self.concurrent_inference = concurrent_inference
        self.sample_rate = sample_rate
        self._cache = cache if cache is not None else shared_model_cache
        self._loader = loader or self._load_whisper_model

    @property
    def cache_key(self) -> tuple[str, str, str, str]:
        return (self.model_name, self.device, self.compute_type, str(self.models_dir))

    def load(self) -> LoadedModel:
        """Load (or fetch the already loaded) model. Blocking."""
        return self._cache.get_or_load(self.cache_key, self._loader)

    def _load_whisper_model(self) -> Any:
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise UnavailableError(
                "faster-whisper not installed. Install with: pip install mockscribe[local]",
                backend=self.name,
            ) from e

        self.models_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Initializing Whisper model %s in %s", self.model_name, self.models_dir)
        try:
            return WhisperModel(
                self.model_name,
                device=self.device,
                compute_type=self.compute_type,
                download_root=str(self.models_dir),
            )
        except Exception as e:
            raise UnavailableError(
                f"Unable to load speech recognition model: {e}", backend=self.name
            ) from e

    async def transcribe(self, audio: AudioInput) -> Transcript:
        if isinstance(audio, AudioAsset):
            pcm = await asyncio.to_thread(normalize, audio, self.sample_rate)
        else:
            pcm = audio

        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(self._run, pcm.samples),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            # The worker thread cannot be interrupted; it finishes in the
            # background and releases the inference lock when done.
            raise BackendTimeoutError(
                f"In-process inference exceeded {self.timeout:g}s", backend=self.name
            ) from e

        return self.assembler.assemble(raw, self.kind)

    def _run(self, samples: np.ndarray) -> dict[str, Any]:
        entry = self.load()
        if self.concurrent_inference:
            return self._infer(entry.model, samples)
        with entry.lock:
            return self._infer(entry.model, samples)

    def _infer(self, model: Any, samples: np.ndarray) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"beam_size": self.beam_size}
        if self.language:
            kwargs["language"] = self.language

        try:
            segments, info = model.transcribe(samples, **kwargs)
            segment_list = [
                {"start": segment.start, "end": segment.end, "text": segment.text.strip()}
                for segment in segments
            ]
        except Exception as e:
            raise BadOutputError(f"Local transcription failed: {e}", backend=self.name) from e

        return {
            "language": getattr(info, "language", self.language),
            "text": " ".join(seg["text"] for seg in segment_list if seg["text"]),
            "segments": segment_list,
        }
