"""
mockscribe.audio.signal - Decode, downmix, resample and peak-normalize audio.

Produces the canonical PCM representation consumed by the local backends:
mono float32 samples in [-1, 1] at a fixed sample rate.
"""

from __future__ import annotations

import asyncio
import io
import shutil
from dataclasses import dataclass

import numpy as np
import soundfile as sf

from mockscribe.audio.asset import AudioAsset
from mockscribe.exceptions import DecodeError, ProcessExitError, ScribeError
from mockscribe.logging import logger
from mockscribe.process import WORKDIR_TOKEN, SubprocessRunner

TRANSCODE_TIMEOUT = 120.0


@dataclass(slots=True)
class PCMBuffer:
    """Mono float32 PCM at a fixed sample rate."""

    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.sample_count / float(self.sample_rate)

    @property
    def is_silent(self) -> bool:
        return self.sample_count == 0 or not np.any(self.samples)

    def to_wav_bytes(self) -> bytes:
        """Encode as 16-bit PCM WAV for backends that read files."""
        buf = io.BytesIO()
        sf.write(buf, self.samples, self.sample_rate, subtype="PCM_16", format="WAV")
        return buf.getvalue()


def decode_audio(data: bytes) -> tuple[np.ndarray, int]:
    """Decode a container/codec buffer into per-channel float samples.

    Returns:
        (frames x channels float32 array, source sample rate)

    Raises:
        DecodeError: If the buffer is empty, unparsable, or holds no frames
    """
    if not data:
        raise DecodeError("Audio buffer is empty")
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (sf.SoundFileError, RuntimeError, TypeError, ValueError) as e:
        raise DecodeError(f"Unsupported or corrupt audio: {e}") from e
    if samples.shape[0] == 0:
        raise DecodeError("Audio contains no samples")
    return samples, int(sample_rate)


def first_channel(samples: np.ndarray) -> np.ndarray:
    """Keep only the first channel.

    Not an energy-preserving mixdown; a stereo file with speech only on
    the right channel will come out silent.
    """
    if samples.ndim == 1:
        return samples
    return np.ascontiguousarray(samples[:, 0])


def peak_normalize(samples: np.ndarray) -> np.ndarray:
    """Scale so that max(|sample|) == 1.0. Silence is returned unchanged."""
    if samples.size == 0:
        return samples
    max_abs = np.max(np.abs(samples))
    if max_abs == 0:
        return samples
    return (samples / max_abs).astype(np.float32, copy=False)


def resampled_length(source_length: int, source_rate: int, target_rate: int) -> int:
    """Length after resampling: floor(source_length * target_rate / source_rate)."""
    return (source_length * target_rate) // source_rate


def resample_nearest(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Nearest-neighbor (index mapping) resampler.

    ``out[i] = samples[floor(i * source_rate / target_rate)]``. Not
    band-limited: downsampling aliases. Identity when the rates match.
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError("sample rates must be positive")
    if source_rate == target_rate or samples.size == 0:
        return samples
    length = resampled_length(samples.shape[0], source_rate, target_rate)
    indices = (np.arange(length, dtype=np.int64) * source_rate) // target_rate
    np.minimum(indices, samples.shape[0] - 1, out=indices)
    return samples[indices]


def normalize_samples(samples: np.ndarray, source_rate: int, target_rate: int) -> PCMBuffer:
    """Downmix, peak-normalize and resample already-decoded samples."""
    mono = peak_normalize(first_channel(samples))
    resampled = resample_nearest(mono, source_rate, target_rate)
    # Decimation can skip the peak sample. Re-normalizing keeps the peak at
    # exactly 1, so out[i] matches the mapped input sample only up to a scale
    # factor.
    if resampled is not mono:
        resampled = peak_normalize(resampled)

    return PCMBuffer(
        samples=np.ascontiguousarray(resampled, dtype=np.float32),
        sample_rate=target_rate,
        channels=1,
    )


def normalize(asset: AudioAsset, target_rate: int = 16000, target_channels: int = 1) -> PCMBuffer:
    """Decode an asset into a peak-normalized mono PCMBuffer at target_rate.

    Pure with respect to its inputs.

    Raises:
        DecodeError: If the audio cannot be decoded
        ValueError: If target_channels is not 1
    """
    if target_channels != 1:
        raise ValueError("only mono output is supported")
    samples, source_rate = decode_audio(asset.data)
    return normalize_samples(samples, source_rate, target_rate)


class SignalNormalizer:
    """Async front end for normalize().

    Decoding runs in a worker thread. Buffers libsndfile cannot parse (e.g.
    webm) are decoded by ffmpeg when it is on PATH.
    """

    def __init__(
        self,
        *,
        target_rate: int = 16000,
        target_channels: int = 1,
        runner: SubprocessRunner | None = None,
        ffmpeg_path: str | None = None,
        transcode_timeout: float = TRANSCODE_TIMEOUT,
    ) -> None:
        if target_channels != 1:
            raise ValueError("only mono output is supported")
        self.target_rate = target_rate
        self.target_channels = target_channels
        self._runner = runner or SubprocessRunner()
        self._ffmpeg_path = ffmpeg_path if ffmpeg_path is not None else shutil.which("ffmpeg")
        self._transcode_timeout = transcode_timeout

    async def normalize(self, asset: AudioAsset) -> PCMBuffer:
        """Decode an asset, falling back to ffmpeg for unknown containers.

        Raises:
            DecodeError: If neither decoder can read the audio
        """
        try:
            return await asyncio.to_thread(
                normalize, asset, self.target_rate, self.target_channels
            )
        except DecodeError as e:
            if not self._ffmpeg_path or not asset.data:
                raise
            logger.debug("In-process decode failed (%s); decoding with ffmpeg", e)

        samples = await self.transcode(asset)
        return await asyncio.to_thread(
            normalize_samples, samples, self.target_rate, self.target_rate
        )

    async def transcode(self, asset: AudioAsset) -> np.ndarray:
        """Decode any ffmpeg-readable container to mono float32 at target_rate.

        Raises:
            DecodeError: If ffmpeg rejects the input or produces no samples
        """
        if not self._ffmpeg_path:
            raise DecodeError("ffmpeg is required to decode this audio format")

        input_name = f"input{asset.suffix}"
        args = [
            "-nostdin",
            "-y",
            "-i",
            f"{WORKDIR_TOKEN}/{input_name}",
            "-vn",
            "-acodec",
            "pcm_f32le",
            "-ar",
            str(self.target_rate),
            "-ac",
            "1",
            "-f",
            "f32le",
            "pipe:1",
        ]
        try:
            result = await self._runner.run(
                self._ffmpeg_path,
                args,
                files={input_name: asset.data},
                timeout=self._transcode_timeout,
            )
            result.check(backend="ffmpeg")
        except ProcessExitError as e:
            raise DecodeError(f"ffmpeg could not decode audio: {e.stderr.strip()[-300:]}") from e
        except ScribeError as e:
            raise DecodeError(f"ffmpeg decoding failed: {e}") from e

        usable = len(result.stdout) - len(result.stdout) % 4
        if usable == 0:
            raise DecodeError("ffmpeg produced no audio samples")
        return np.frombuffer(result.stdout[:usable], dtype="<f4").astype(np.float32)
