"""
echoscribe.cli - Typer CLI entry point.

Provides subcommands for model setup, settings and transcription.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn
from rich.table import Table

from echoscribe import __version__, commands
from echoscribe.config import AppPaths, load_settings
from echoscribe.engine import BUILD_DEV, BundledLocator, EngineInvoker, locator_for_build
from echoscribe.exceptions import EchoScribeError
from echoscribe.logging import configure_logging
from echoscribe.progress import AnyProgress, DownloadProgress
from echoscribe.transcribe import TranscriptionRequest
from echoscribe.utils import format_duration, format_size

app = typer.Typer(
    name="echoscribe",
    help="Local speech-to-text transcription.\n\n"
    "Downloads and verifies whisper.cpp models, transcribes recordings, and "
    "saves markdown transcripts with optional two-speaker labels.",
    add_completion=False,
)
console = Console()


class CliState:
    def __init__(self, paths: AppPaths, build: str | None) -> None:
        self.paths = paths
        self.build = build

    def locator(self) -> BundledLocator:
        return locator_for_build(self.build)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"echoscribe {__version__}")
        raise typer.Exit()


def fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    dev: bool = typer.Option(
        False, "--dev", help="Allow a locally installed whisper-cli when no bundled binary exists"
    ),
    home: str = typer.Option(
        None, "--home", envvar="ECHOSCRIBE_HOME", help="Application data directory"
    ),
    log_file: Path = typer.Option(None, "--log-file", help="Also write log records to this file"),
) -> None:
    """Echo Scribe - local speech-to-text transcription."""
    configure_logging(verbose, log_file)
    paths = AppPaths(Path(home).expanduser()) if home else AppPaths.default()
    ctx.obj = CliState(paths, BUILD_DEV if dev else None)


def print_models_table(state: commands.SetupState) -> None:
    table = Table(title="Models")
    table.add_column("Model", style="cyan")
    table.add_column("Description")
    table.add_column("Size", style="green")
    table.add_column("Status", style="yellow")

    for model in state.models:
        name = f"{model.id} *" if model.id == state.selected_model else model.id
        status = "[green]✓ Downloaded[/green]" if model.downloaded else "[dim]Not downloaded[/dim]"
        table.add_row(name, model.label, f"{model.size_mb} MB", status)

    console.print(table)


def print_setup_state(state: commands.SetupState) -> None:
    print_models_table(state)
    console.print(f"Selected model:   [cyan]{state.selected_model}[/cyan]")
    console.print(f"Transcripts:      {state.transcript_dir}")
    console.print(f"Models directory: {state.models_dir}")
    console.print(f"Diarization:      {state.diarization_mode}")
    if state.coachnotes_enabled:
        client = state.coachnotes_client or "-"
        console.print(f"CoachNotes:       {state.coachnotes_root_dir or '-'} (client: {client})")
        if state.coachnotes_clients:
            console.print(f"[dim]  Clients: {', '.join(state.coachnotes_clients)}[/dim]")
    if state.ready:
        console.print("[green]✓ Ready to transcribe[/green]")
    else:
        console.print("[yellow]Not ready: download the selected model and install whisper-cli[/yellow]")


@app.command("setup")
def show_setup(ctx: typer.Context) -> None:
    """Show models, directories and readiness."""
    try:
        state = commands.get_setup_state(ctx.obj.paths, ctx.obj.locator())
    except EchoScribeError as e:
        fail(e)
    print_setup_state(state)


@app.command("models")
def show_models(ctx: typer.Context) -> None:
    """List catalog models and which are downloaded."""
    try:
        state = commands.get_setup_state(ctx.obj.paths, ctx.obj.locator())
    except EchoScribeError as e:
        fail(e)
    print_models_table(state)
    console.print("[dim]* selected model[/dim]")


@app.command("select-model")
def select_model(
    ctx: typer.Context,
    model: str = typer.Argument(..., help="Model id, e.g. base or small.en-tdrz"),
) -> None:
    """Select the default transcription model."""
    try:
        state = commands.set_selected_model(ctx.obj.paths, model, ctx.obj.locator())
    except EchoScribeError as e:
        fail(e)
    console.print(f"[green]✓[/green] Selected model '{state.selected_model}'")


@app.command("set-dir")
def set_directory(
    ctx: typer.Context,
    directory: str = typer.Argument(..., help="Folder for standard transcripts"),
) -> None:
    """Set the transcript folder, creating it if needed."""
    try:
        state = commands.set_transcript_directory(ctx.obj.paths, directory, ctx.obj.locator())
    except EchoScribeError as e:
        fail(e)
    console.print(f"[green]✓[/green] Transcripts will be saved to {state.transcript_dir}")


@app.command("clients")
def show_clients(
    root: str = typer.Argument(..., help="CoachNotes root folder"),
) -> None:
    """List CoachNotes client folders."""
    try:
        clients = commands.get_secondary_clients(root)
    except EchoScribeError as e:
        fail(e)
    if not clients:
        console.print("[yellow]No client folders found.[/yellow]")
        return
    for client in clients:
        console.print(client)


@app.command("coachnotes")
def configure_coachnotes(
    ctx: typer.Context,
    enable: bool = typer.Option(..., "--enable/--disable", help="Save into CoachNotes folders"),
    root: str = typer.Option(None, "--root", "-r", help="CoachNotes root folder"),
    client: str = typer.Option(None, "--client", "-c", help="Default client folder"),
) -> None:
    """Configure the CoachNotes (client-scoped) destination."""
    try:
        state = commands.set_secondary_output_settings(
            ctx.obj.paths, enable, root, client, ctx.obj.locator()
        )
    except EchoScribeError as e:
        fail(e)
    status = "enabled" if state.coachnotes_enabled else "disabled"
    console.print(f"[green]✓[/green] CoachNotes output {status}")
    if state.coachnotes_root_dir:
        console.print(f"[dim]  Root: {state.coachnotes_root_dir}[/dim]")
    if state.coachnotes_client:
        console.print(f"[dim]  Client: {state.coachnotes_client}[/dim]")


@app.command("download")
def download(
    ctx: typer.Context,
    model: str = typer.Argument(None, help="Model id (defaults to the selected model)"),
) -> None:
    """Download and verify a model."""
    paths = ctx.obj.paths
    try:
        model = model or load_settings(paths).selected_model
    except EchoScribeError as e:
        fail(e)

    with Progress(
        TextColumn("[cyan]{task.fields[model]}[/cyan]"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TextColumn("{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None, model=model)

        def on_progress(event: AnyProgress) -> None:
            if isinstance(event, DownloadProgress):
                progress.update(
                    task,
                    completed=event.bytes_downloaded,
                    total=event.total_bytes,
                    description=event.message,
                )

        try:
            result = commands.download_model(paths, model, on_progress)
        except EchoScribeError as e:
            progress.stop()
            fail(e)

    path = Path(result.local_path)
    size = format_size(path.stat().st_size) if path.exists() else "-"
    console.print(f"[green]✓[/green] Model '{result.model_id}' ready ({size})")
    console.print(f"[dim]  {result.local_path}[/dim]")


@app.command("transcribe")
def transcribe(
    ctx: typer.Context,
    audio: Path = typer.Argument(..., help="16 kHz mono WAV recording"),
    model: str = typer.Option(None, "--model", "-m", help="Model id (defaults to selected)"),
    language: str = typer.Option("auto", "--language", "-l", help="Language code or 'auto'"),
    save: bool = typer.Option(True, "--save/--no-save", help="Save a markdown transcript"),
    output_mode: str = typer.Option(
        "standard", "--output-mode", "-o", help="standard or coachnotes"
    ),
    client: str = typer.Option(None, "--client", "-c", help="CoachNotes client folder"),
    diarization: str = typer.Option(
        None, "--diarization", "-d", help="none or tdrz_2speaker (defaults to saved setting)"
    ),
    reveal: bool = typer.Option(False, "--reveal", help="Show the saved file when done"),
) -> None:
    """Transcribe a recording."""
    paths = ctx.obj.paths

    try:
        audio_data = audio.read_bytes()
    except OSError as e:
        fail(e)

    try:
        request = TranscriptionRequest(
            audio=audio_data,
            model=model or load_settings(paths).selected_model,
            language=language,
            persist=save,
            output_mode=output_mode,
            client=client,
            diarization_mode=diarization,
        )
        with console.status("Starting...") as status:

            def on_progress(event: AnyProgress) -> None:
                status.update(f"[cyan]{escape(event.message)}[/cyan] ({event.percent}%)")

            result = commands.transcribe(
                paths, request, on_progress, EngineInvoker(ctx.obj.locator())
            )
    except EchoScribeError as e:
        fail(e)

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {escape(warning)}[/yellow]")

    console.print(result.transcript, markup=False, highlight=False)

    duration = format_duration(commands.estimate_duration_seconds(audio_data))
    if result.saved_path:
        console.print(f"\n[green]✓[/green] Saved transcript ({duration})")
        console.print(f"[dim]  {result.saved_path}[/dim]")
        if reveal:
            try:
                commands.reveal_in_file_manager(result.saved_path)
            except EchoScribeError as e:
                fail(e)


@app.command("reveal")
def reveal_file(
    path: Path = typer.Argument(..., help="File to show in the file manager"),
) -> None:
    """Show a file in the platform file manager."""
    try:
        commands.reveal_in_file_manager(path)
    except EchoScribeError as e:
        fail(e)
