"""
mockscribe.validation - Environment and dependency checks.

Reports which transcription backends can run on this machine before a
request is attempted.
"""

from __future__ import annotations

import importlib.util
import os
import shutil
import subprocess
from typing import Any

from mockscribe.config import ScribeConfig
from mockscribe.exceptions import DependencyError


def check_ffmpeg() -> dict[str, str]:
    """Check that FFmpeg is installed and get its version.

    Returns:
        Dict with 'ffmpeg_path' and 'ffmpeg_version'

    Raises:
        DependencyError: If FFmpeg not found
    """
    ffmpeg_path = shutil.which("ffmpeg")
    if not ffmpeg_path:
        raise DependencyError(
            "ffmpeg",
            "FFmpeg not found in PATH",
            "Install with: brew install ffmpeg (macOS) or apt install ffmpeg (Linux)",
        )

    result = {"ffmpeg_path": ffmpeg_path}
    try:
        proc = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        version_line = proc.stdout.split("\n")[0]
        result["ffmpeg_version"] = version_line.split()[2] if version_line else "unknown"
    except (subprocess.TimeoutExpired, IndexError):
        result["ffmpeg_version"] = "unknown"

    return result


def check_remote_credentials(config: ScribeConfig) -> dict[str, Any]:
    """Check whether the remote API key environment variable is set."""
    env_name = config.remote.api_key_env
    present = bool(os.getenv(env_name))
    result: dict[str, Any] = {"available": present, "api_key_env": env_name}
    if not present:
        result["error"] = f"Environment variable {env_name} is not set"
    return result


def check_subprocess_command(config: ScribeConfig) -> dict[str, Any]:
    """Check that the worker executable can be found."""
    executable = config.subprocess.command[0]
    resolved = shutil.which(executable)
    result: dict[str, Any] = {"available": resolved is not None, "executable": executable}
    if resolved is None:
        result["error"] = f"Executable not found: {executable}"
    return result


def check_faster_whisper() -> dict[str, Any]:
    """Check whether faster-whisper is importable without importing it."""
    if importlib.util.find_spec("faster_whisper") is None:
        return {
            "available": False,
            "error": "faster-whisper not installed. Install with: pip install mockscribe[local]",
        }
    return {"available": True}


def run_preflight_checks(config: ScribeConfig) -> dict[str, Any]:
    """Run all environment checks for the configured backend order.

    Returns:
        Dict with 'passed' (at least one backend usable) and per-check results
    """
    results: dict[str, Any] = {"passed": False, "checks": {}}

    try:
        results["checks"]["ffmpeg"] = {"available": True, **check_ffmpeg()}
    except DependencyError as e:
        results["checks"]["ffmpeg"] = {
            "available": False,
            "error": str(e),
            "install_hint": e.install_hint,
        }

    backend_checks = {
        "remote": lambda: check_remote_credentials(config),
        "subprocess": lambda: check_subprocess_command(config),
        "in_process": check_faster_whisper,
    }
    for name in config.backend_order:
        check = backend_checks[name]()
        results["checks"][name] = check
        if check["available"]:
            results["passed"] = True

    return results
