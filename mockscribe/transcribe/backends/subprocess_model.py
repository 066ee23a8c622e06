"""
mockscribe.transcribe.backends.subprocess_model - Whisper in a child process.

Writes the audio into the runner's scratch directory, runs the worker
command on it, and parses the JSON the worker prints on stdout.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from mockscribe.audio.asset import AudioAsset
from mockscribe.exceptions import BadOutputError, UnavailableError
from mockscribe.process import WORKDIR_TOKEN, SubprocessRunner
from mockscribe.transcribe.assembler import TranscriptAssembler
from mockscribe.transcribe.backends.base import AudioInput, TranscriptionBackend
from mockscribe.transcribe.types import BackendKind, Transcript
from mockscribe.transcribe.worker import EXIT_RUNTIME_MISSING


def parse_worker_output(stdout: str) -> dict[str, Any]:
    """Extract the result object from worker stdout.

    Accepts a single JSON document, or line-delimited output where the
    last line holding a JSON object is the result (earlier lines may be
    progress messages).

    Raises:
        BadOutputError: If no JSON object can be found
    """
    text = stdout.strip()
    if not text:
        raise BadOutputError("Worker produced no output")

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return data

    for line in reversed(text.splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise BadOutputError("Failed to parse worker output", detail=text[-500:])


class LocalSubprocessBackend(TranscriptionBackend):
    """Runs a model-inference command per request."""

    name = "subprocess"
    kind = BackendKind.SUBPROCESS
    requires_pcm = True

    def __init__(
        self,
        *,
        command: Sequence[str],
        model: str = "base",
        language: str | None = "en",
        timeout: float = 300.0,
        runner: SubprocessRunner | None = None,
        assembler: TranscriptAssembler | None = None,
    ) -> None:
        super().__init__(timeout=timeout, assembler=assembler)
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.model = model
        self.language = language
        self._runner = runner or SubprocessRunner()

    def _check_executable(self) -> str:
        executable = self.command[0]
        if shutil.which(executable) is None and not Path(executable).is_file():
            raise UnavailableError(
                f"Model runtime not found: {executable}", backend=self.name
            )
        return executable

    def build_args(self, audio_name: str) -> list[str]:
        args = [*self.command[1:], f"{WORKDIR_TOKEN}/{audio_name}", "--model", self.model]
        if self.language:
            args += ["--language", self.language]
        return args

    async def transcribe(self, audio: AudioInput) -> Transcript:
        executable = self._check_executable()

        if isinstance(audio, AudioAsset):
            audio_name = f"audio{audio.suffix}"
            data = audio.data
        else:
            audio_name = "audio.wav"
            data = audio.to_wav_bytes()

        result = await self._runner.run(
            executable,
            self.build_args(audio_name),
            files={audio_name: data},
            timeout=self.timeout,
        )

        if result.exit_code == EXIT_RUNTIME_MISSING:
            raise UnavailableError(
                "Whisper runtime not installed for worker",
                backend=self.name,
                detail=result.stderr_text,
            )
        result.check(backend=self.name)

        payload = parse_worker_output(result.stdout_text)
        if payload.get("error"):
            raise BadOutputError(
                f"Whisper error: {payload['error']}",
                backend=self.name,
                detail=result.stderr_text,
            )
        return self.assembler.assemble(payload, self.kind)
