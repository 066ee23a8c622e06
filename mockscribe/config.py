"""
mockscribe.config - YAML config loading, preset merging, validation.

Handles loading mockscribe.yaml, applying preset defaults, and validating
pipeline limits and backend parameters.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

BACKEND_NAMES = ("remote", "subprocess", "in_process")

DEFAULT_MIME_TYPES = [
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/mp3",
    "audio/mpeg",
]


class RemoteBackendConfig(BaseModel):
    """Remote HTTP transcription service."""

    url: str = "https://api.sarvam.ai/v1/transcribe"
    api_key_env: str = "SARVAM_API_KEY"
    api_key_header: str = "x-api-key"
    model: str = "whisper"
    language: str | None = "en"
    timeout: float = Field(default=30.0, gt=0.0)


class SubprocessBackendConfig(BaseModel):
    """Whisper worker run as a child process."""

    command: list[str] = Field(
        default_factory=lambda: [sys.executable, "-m", "mockscribe.transcribe.worker"]
    )
    model: str = "base"
    language: str | None = "en"
    timeout: float = Field(default=300.0, gt=0.0)

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("command must not be empty")
        return v


class InProcessBackendConfig(BaseModel):
    """faster-whisper model loaded into this process."""

    model: str = "base.en"
    models_dir: Path = Path("models")
    device: str = "auto"
    compute_type: str = "int8"
    beam_size: int = Field(default=1, ge=1)
    language: str | None = "en"
    timeout: float = Field(default=300.0, gt=0.0)
    concurrent_inference: bool = False


class ScribeConfig(BaseModel):
    """Resolved configuration for the transcription pipeline."""

    preset: str = "default"

    max_upload_bytes: int = Field(default=25 * 1024 * 1024, gt=0)
    supported_mime_types: list[str] = Field(default_factory=lambda: list(DEFAULT_MIME_TYPES))

    target_sample_rate: int = Field(default=16000, gt=0)
    target_channels: int = 1

    backend_order: list[str] = Field(default_factory=lambda: list(BACKEND_NAMES))
    seconds_per_word: float = Field(default=0.3, gt=0.0)

    remote: RemoteBackendConfig = Field(default_factory=RemoteBackendConfig)
    subprocess: SubprocessBackendConfig = Field(default_factory=SubprocessBackendConfig)
    in_process: InProcessBackendConfig = Field(default_factory=InProcessBackendConfig)

    config_path: Path | None = None

    @field_validator("target_channels")
    @classmethod
    def validate_channels(cls, v: int) -> int:
        if v != 1:
            raise ValueError("target_channels must be 1 (mono)")
        return v

    @field_validator("backend_order")
    @classmethod
    def validate_backend_order(cls, v: list[str]) -> list[str]:
        unknown = [name for name in v if name not in BACKEND_NAMES]
        if unknown:
            raise ValueError(f"backend_order entries must be one of: {set(BACKEND_NAMES)}")
        if len(set(v)) != len(v):
            raise ValueError("backend_order must not repeat a backend")
        return v

    @field_validator("supported_mime_types")
    @classmethod
    def validate_mime_types(cls, v: list[str]) -> list[str]:
        return [m.strip().lower() for m in v if m.strip()]

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: str) -> str:
        if v not in BUILTIN_PRESETS:
            raise ValueError(f"preset must be one of: {set(BUILTIN_PRESETS)}")
        return v


BUILTIN_PRESETS: dict[str, dict[str, Any]] = {
    "default": {
        "backend_order": ["remote", "subprocess", "in_process"],
    },
    "offline": {
        "backend_order": ["subprocess", "in_process"],
    },
    "cloud": {
        "backend_order": ["remote"],
        "remote": {"timeout": 60.0},
    },
}


def load_preset(name: str) -> dict[str, Any]:
    """Return a copy of a built-in preset."""
    if name in BUILTIN_PRESETS:
        return copy.deepcopy(BUILTIN_PRESETS[name])
    raise ValueError(f"Unknown preset: {name}")


def merge_config(file_config: dict[str, Any], preset: dict[str, Any]) -> dict[str, Any]:
    """Merge file config with preset defaults. File config takes precedence."""
    merged = copy.deepcopy(preset)
    for key, value in file_config.items():
        if key in BACKEND_NAMES and isinstance(value, dict):
            merged.setdefault(key, {})
            merged[key].update(value)
        elif value is not None:
            merged[key] = value
    return merged


def load_config(config_file: Path | None = None) -> ScribeConfig:
    """Load and validate configuration.

    Args:
        config_file: Path to a mockscribe.yaml, or None for defaults

    Raises:
        FileNotFoundError: If config_file does not exist
        ConfigError: If the file content is invalid
    """
    from pydantic import ValidationError

    from mockscribe.exceptions import ConfigError

    raw_config: dict[str, Any] = {}
    if config_file is not None:
        if not config_file.exists():
            raise FileNotFoundError(f"No config file found at {config_file}")
        with open(config_file) as f:
            raw_config = yaml.safe_load(f) or {}
        if not isinstance(raw_config, dict):
            raise ConfigError(f"{config_file} must contain a mapping")

    preset_name = raw_config.get("preset", "default")
    try:
        preset = load_preset(preset_name)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    merged = merge_config(raw_config, preset)
    merged["preset"] = preset_name
    merged["config_path"] = config_file

    try:
        return ScribeConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def create_default_config(preset: str = "default") -> dict[str, Any]:
    """Create a starter config dict for a preset."""
    defaults: dict[str, Any] = {
        "preset": preset,
        "max_upload_bytes": 25 * 1024 * 1024,
        "target_sample_rate": 16000,
        "remote": {
            "url": RemoteBackendConfig().url,
            "api_key_env": "SARVAM_API_KEY",
        },
        "subprocess": {"model": "base"},
        "in_process": {"model": "base.en", "models_dir": "models"},
    }
    return merge_config(defaults, load_preset(preset))


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
