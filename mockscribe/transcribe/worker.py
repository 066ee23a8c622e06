"""
mockscribe.transcribe.worker - Whisper inference as a standalone process.

Run as ``python -m mockscribe.transcribe.worker AUDIO``. Progress messages
go to stderr; stdout carries exactly one JSON object:

    {"text": ..., "language": ..., "segments": [{"start", "end", "text"}]}

Exit codes: 0 success, 1 transcription error (JSON ``{"error": ...}`` on
stderr), 3 no Whisper runtime installed.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer

from mockscribe.exceptions import DependencyError

EXIT_RUNTIME_MISSING = 3

app = typer.Typer(
    name="mockscribe-worker",
    help="Transcribe one audio file with a local Whisper runtime and print JSON.",
    add_completion=False,
)


def _progress(message: str) -> None:
    typer.echo(message, err=True)


def _transcribe_faster(audio_path: Path, model: str, language: str | None) -> dict[str, Any]:
    """Transcribe using faster-whisper."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as e:
        raise DependencyError(
            "faster-whisper", "not installed", "Install with: pip install faster-whisper"
        ) from e

    _progress(f"Loading {model} model...")
    model_instance = WhisperModel(model, device="auto", compute_type="auto")

    kwargs: dict[str, Any] = {}
    if language:
        kwargs["language"] = language

    _progress("Starting transcription...")
    segments, info = model_instance.transcribe(str(audio_path), **kwargs)

    return {
        "language": info.language,
        "segments": [
            {"start": segment.start, "end": segment.end, "text": segment.text.strip()}
            for segment in segments
        ],
    }


def _transcribe_openai(audio_path: Path, model: str, language: str | None) -> dict[str, Any]:
    """Transcribe using openai-whisper."""
    try:
        import whisper
    except ImportError as e:
        raise DependencyError(
            "openai-whisper", "not installed", "Install with: pip install openai-whisper"
        ) from e

    _progress(f"Loading {model} model...")
    model_instance = whisper.load_model(model)

    _progress("Starting transcription...")
    result = model_instance.transcribe(str(audio_path), language=language)

    return {
        "language": result.get("language", language),
        "segments": [
            {"start": seg.get("start"), "end": seg.get("end"), "text": seg.get("text", "").strip()}
            for seg in result.get("segments", [])
        ],
    }


RUNTIMES = {
    "faster": _transcribe_faster,
    "openai": _transcribe_openai,
}


def transcribe_file(
    audio_path: Path,
    model: str = "base",
    language: str | None = None,
    runtime: str = "auto",
) -> dict[str, Any]:
    """Transcribe a file with the first installed runtime.

    Raises:
        DependencyError: If no requested runtime is installed
    """
    if runtime == "auto":
        candidates = list(RUNTIMES)
    elif runtime in RUNTIMES:
        candidates = [runtime]
    else:
        raise ValueError(f"Unknown runtime: {runtime}")

    missing: list[str] = []
    for name in candidates:
        try:
            result = RUNTIMES[name](audio_path, model, language)
        except DependencyError as e:
            missing.append(str(e))
            continue
        result["text"] = " ".join(seg["text"] for seg in result["segments"] if seg["text"])
        _progress("Transcription completed")
        return result

    raise DependencyError("whisper", "no Whisper runtime installed: " + "; ".join(missing))


@app.command()
def main(
    audio: Path = typer.Argument(..., help="Audio file to transcribe"),
    model: str = typer.Option("base", "--model", "-m", help="Whisper model name"),
    language: str | None = typer.Option(None, "--language", "-l", help="Language code"),
    runtime: str = typer.Option("auto", "--runtime", "-r", help="faster, openai, or auto"),
) -> None:
    """Transcribe AUDIO and print the result as JSON on stdout."""
    if not audio.exists():
        typer.echo(json.dumps({"error": f"Audio file not found: {audio}"}), err=True)
        raise typer.Exit(1)

    try:
        result = transcribe_file(audio, model=model, language=language, runtime=runtime)
    except DependencyError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(EXIT_RUNTIME_MISSING)
    except Exception as e:
        typer.echo(json.dumps({"error": str(e)}), err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(result, ensure_ascii=False))


if __name__ == "__main__":
    app()
