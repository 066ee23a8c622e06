"""
mockscribe.transcribe.backends.remote - Remote HTTP transcription service.

Uploads the original file bytes (not PCM) as multipart form data with an
API key header. Highest fidelity, so it is tried first by default.
"""

from __future__ import annotations

import os

import httpx

from mockscribe.audio.asset import AudioAsset
from mockscribe.exceptions import BackendTimeoutError, BadOutputError, UnavailableError
from mockscribe.logging import logger
from mockscribe.transcribe.assembler import TEXT_KEYS, TranscriptAssembler
from mockscribe.transcribe.backends.base import AudioInput, TranscriptionBackend
from mockscribe.transcribe.types import BackendKind, Transcript


class RemoteAPIBackend(TranscriptionBackend):
    """Transcription through an external HTTP API."""

    name = "remote"
    kind = BackendKind.REMOTE
    requires_pcm = False

    def __init__(
        self,
        *,
        url: str,
        api_key: str | None = None,
        api_key_env: str = "SARVAM_API_KEY",
        api_key_header: str = "x-api-key",
        model: str = "whisper",
        language: str | None = "en",
        timeout: float = 30.0,
        assembler: TranscriptAssembler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, assembler=assembler)
        self.url = url
        self.model = model
        self.language = language
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._api_key_header = api_key_header
        self._transport = transport

    def _resolve_api_key(self) -> str:
        api_key = self._api_key or os.getenv(self._api_key_env)
        if not api_key:
            raise UnavailableError(
                f"Remote API key is not configured (set {self._api_key_env})",
                backend=self.name,
            )
        return api_key

    async def transcribe(self, audio: AudioInput) -> Transcript:
        api_key = self._resolve_api_key()

        if isinstance(audio, AudioAsset):
            upload = (audio.filename, audio.data, audio.base_mime_type)
        else:
            upload = ("audio.wav", audio.to_wav_bytes(), "audio/wav")

        form = {"model": self.model}
        if self.language:
            form["language"] = self.language

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    headers={self._api_key_header: api_key},
                    files={"file": upload},
                    data=form,
                )
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(
                f"Transcription service timed out after {self.timeout:g}s", backend=self.name
            ) from e
        except httpx.TransportError as e:
            raise UnavailableError(
                f"Transcription service unreachable: {e}", backend=self.name
            ) from e

        if not response.is_success:
            body = response.text[:500]
            logger.warning(
                "Transcription service error response: %s %s %s",
                response.status_code,
                response.reason_phrase,
                body,
            )
            raise BadOutputError(
                f"Transcription service error ({response.status_code})",
                backend=self.name,
                detail=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BadOutputError(
                "Transcription service returned invalid JSON",
                backend=self.name,
                detail=response.text[:500],
            ) from e

        if not isinstance(data, dict) or not any(data.get(key) for key in TEXT_KEYS):
            raise BadOutputError("No transcription result available", backend=self.name)

        return self.assembler.assemble(data, self.kind)
