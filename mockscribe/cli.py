"""
mockscribe.cli - Typer CLI entry point.

Provides subcommands to transcribe a recording, write a starter config,
check the environment, and pre-download the local model.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mockscribe import __version__
from mockscribe.config import BUILTIN_PRESETS, create_default_config, load_config, write_config
from mockscribe.exceptions import (
    AllBackendsFailed,
    ConfigError,
    DecodeError,
    InvalidAudioError,
    ScribeError,
)
from mockscribe.logging import configure_logging

app = typer.Typer(
    name="mockscribe",
    help="Transcription pipeline for interview-practice recordings.\n\n"
    "Normalizes an uploaded recording and transcribes it through a fallback "
    "chain of remote and local Whisper backends.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

CONFIG_FILENAME = "mockscribe.yaml"


def find_config_file() -> Path | None:
    """Find mockscribe.yaml in the current directory or its parents."""
    current = Path.cwd()
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists():
            return current / CONFIG_FILENAME
        current = current.parent
    return None


def _load(config_path: Path | None):
    try:
        return load_config(config_path or find_config_file())
    except (FileNotFoundError, ConfigError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(2)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"mockscribe {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Mockscribe - transcription pipeline for interview practice."""
    pass


@app.command("init")
def init_config(
    preset: str = typer.Option(
        "default",
        "--preset",
        "-p",
        help="Config preset: default, offline, or cloud",
    ),
    path: str = typer.Option(".", "--path", "-d", help="Directory to write mockscribe.yaml in"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a starter mockscribe.yaml."""
    if preset not in BUILTIN_PRESETS:
        console.print(f"[red]Error: Unknown preset '{preset}'[/red]")
        raise typer.Exit(1)

    config_path = Path(path) / CONFIG_FILENAME
    if config_path.exists() and not force:
        console.print(f"[red]Error: '{config_path}' already exists[/red]")
        raise typer.Exit(1)

    write_config(create_default_config(preset), config_path)
    console.print(f"[green]✓[/green] Wrote {config_path} with preset '{preset}'")


@app.command("transcribe")
def transcribe(
    audio: Path = typer.Argument(..., help="Audio file (WAV or MP3)"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to mockscribe.yaml"
    ),
    backends: list[str] | None = typer.Option(
        None, "--backend", "-b", help="Backend to try (repeatable, in order)"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write transcript JSON here instead of stdout"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """Transcribe an audio file through the backend fallback chain."""
    from mockscribe.audio.asset import AudioAsset
    from mockscribe.io import dumps_transcript, write_json
    from mockscribe.transcribe.orchestrator import create_orchestrator_from_config

    configure_logging(verbose)
    config = _load(config_path)

    if not audio.exists():
        err_console.print(f"[red]Error: Audio file not found: {audio}[/red]")
        raise typer.Exit(2)

    try:
        orchestrator = create_orchestrator_from_config(config, backends or None)
        asset = AudioAsset.from_path(audio)
        run = asyncio.run(orchestrator.run(asset))
    except (InvalidAudioError, DecodeError) as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    except AllBackendsFailed as e:
        err_console.print(_attempts_table(e.attempts))
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        if output:
            write_json(output, e.to_dict())
        raise typer.Exit(1)
    except ScribeError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    err_console.print(_attempts_table(run.attempts))

    result = run.transcript.to_dict()
    if output:
        write_json(output, result)
        err_console.print(
            f"[green]✓[/green] Transcribed with {run.transcript.backend}: "
            f"{len(run.transcript.segments)} chunk(s) → {output}"
        )
    else:
        typer.echo(dumps_transcript(result))


def _attempts_table(attempts) -> Table:
    table = Table(title="Backend Attempts")
    table.add_column("Backend", style="cyan")
    table.add_column("Outcome", style="yellow")
    table.add_column("Time", style="green")
    table.add_column("Error")
    styles = {"success": "green", "failure": "red", "timeout": "yellow"}
    for attempt in attempts:
        style = styles.get(attempt.outcome.value, "white")
        table.add_row(
            attempt.backend,
            f"[{style}]{attempt.outcome.value}[/{style}]",
            f"{attempt.elapsed_seconds:.2f}s",
            escape((attempt.error or "")[:120]),
        )
    return table


@app.command("check")
def check(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to mockscribe.yaml"
    ),
) -> None:
    """Report which backends can run in this environment."""
    from mockscribe.validation import run_preflight_checks

    config = _load(config_path)
    results = run_preflight_checks(config)

    table = Table(title="Environment")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for name, result in results["checks"].items():
        status = "[green]✓ available[/green]" if result["available"] else "[red]✗ missing[/red]"
        detail = result.get("error") or result.get("ffmpeg_version") or ""
        table.add_row(name, status, escape(str(detail)))

    console.print(table)

    if not results["passed"]:
        console.print("[red]No configured backend can run.[/red]")
        raise typer.Exit(1)


@app.command("download-model")
def download_model(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to mockscribe.yaml"
    ),
) -> None:
    """Download the in-process Whisper model into the models directory."""
    from mockscribe.transcribe.backends import LocalInProcessBackend

    config = _load(config_path)
    cfg = config.in_process
    backend = LocalInProcessBackend(
        model=cfg.model,
        models_dir=cfg.models_dir,
        device=cfg.device,
        compute_type=cfg.compute_type,
    )

    console.print(f"[cyan]Downloading {cfg.model} into {cfg.models_dir}...[/cyan]")
    try:
        backend.load()
    except ScribeError as e:
        console.print(f"[red]Error downloading model: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Model downloaded successfully")


if __name__ == "__main__":
    app()
