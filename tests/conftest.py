"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf
import yaml

from mockscribe.audio.asset import AudioAsset


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples as a 32-bit float WAV so values survive exactly."""
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, format="WAV", subtype="FLOAT")
    return buf.getvalue()


@pytest.fixture
def wav_factory() -> Callable[[np.ndarray, int], bytes]:
    """Return a function encoding samples to WAV bytes."""
    return encode_wav


@pytest.fixture
def asset_factory() -> Callable[[np.ndarray, int], AudioAsset]:
    """Return a function wrapping samples in a WAV AudioAsset."""

    def make(samples: np.ndarray, sample_rate: int) -> AudioAsset:
        return AudioAsset(
            data=encode_wav(samples, sample_rate), mime_type="audio/wav", filename="a.wav"
        )

    return make


@pytest.fixture
def sine_wav() -> bytes:
    """One second of a 440 Hz tone at 16 kHz, peak amplitude 0.5."""
    t = np.arange(16000, dtype=np.float32) / 16000
    samples = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    return encode_wav(samples, 16000)


@pytest.fixture
def silent_wav() -> bytes:
    """Three seconds of digital silence at 16 kHz."""
    return encode_wav(np.zeros(48000, dtype=np.float32), 16000)


@pytest.fixture
def sine_asset(sine_wav: bytes) -> AudioAsset:
    return AudioAsset(data=sine_wav, mime_type="audio/wav", filename="answer.wav")


@pytest.fixture
def silent_asset(silent_wav: bytes) -> AudioAsset:
    return AudioAsset(data=silent_wav, mime_type="audio/wav", filename="silence.wav")


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a sample configuration dictionary."""
    return {
        "preset": "default",
        "max_upload_bytes": 25 * 1024 * 1024,
        "target_sample_rate": 16000,
        "backend_order": ["remote", "subprocess", "in_process"],
        "remote": {
            "url": "https://stt.example.test/v1/transcribe",
            "api_key_env": "MOCKSCRIBE_TEST_KEY",
            "timeout": 10.0,
        },
        "subprocess": {"model": "tiny", "timeout": 60.0},
        "in_process": {"model": "tiny.en", "models_dir": "models"},
    }


@pytest.fixture
def config_file(tmp_path: Path, sample_config_dict: dict) -> Path:
    """Write sample_config_dict to a mockscribe.yaml and return its path."""
    path = tmp_path / "mockscribe.yaml"
    with open(path, "w") as f:
        yaml.dump(sample_config_dict, f)
    return path


@pytest.fixture
def sample_backend_response() -> dict:
    """Return a remote-service style response with mixed field names."""
    return {
        "transcript": "Tell me about yourself. I have five years of experience.",
        "chunks": [
            {"transcript": "Tell me about yourself.", "timestamp": [0.0, 1.8]},
            {"text": "I have five years of experience.", "start": 2.1, "end": 4.0},
        ],
    }
