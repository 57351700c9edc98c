"""
Command-line interface for Live Orb.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="live-orb",
    help="Real-time voice assistant session over the Gemini Live API",
    no_args_is_help=True,
)

console = Console()


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )


def _load_config(config_file: Optional[Path]):
    from live_orb.config import OrbConfig, get_config, set_config

    if config_file is None:
        return get_config()
    try:
        config = OrbConfig.from_yaml(config_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading config {config_file}: {e}[/red]")
        raise typer.Exit(1)
    set_config(config)
    return config


@app.command()
def run(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Your name (prompted if missing)"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="What you want help with (prompted if missing)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset (e.g., configs/default.yaml)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Live model name"),
    voice: Optional[str] = typer.Option(None, "--voice", "-v", help="Prebuilt voice name"),
    input_device: Optional[int] = typer.Option(None, "--input-device", help="Audio input device index (see 'live-orb devices')"),
    output_device: Optional[int] = typer.Option(None, "--output-device", help="Audio output device index"),
    no_search: bool = typer.Option(False, "--no-search", help="Disable Google Search grounding"),
    serve: bool = typer.Option(False, "--serve", help="Expose session signals over HTTP/WebSocket"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Signal server port"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Start a live voice session."""
    from live_orb.session.capture import MicrophoneUnavailableError, ensure_microphone
    from live_orb.session.state import UserProfile

    _setup_logging(verbose)
    config = _load_config(config_file)

    if model:
        config.model.model = model
    if voice:
        config.model.voice = voice
    if no_search:
        config.model.enable_search = False
    if input_device is not None:
        config.audio.input_device = input_device
    if output_device is not None:
        config.audio.output_device = output_device
    if port is not None:
        config.server.port = port

    if not config.model.api_key:
        console.print("[red]Error: set GEMINI_API_KEY (or GOOGLE_API_KEY) to use the Live API[/red]")
        raise typer.Exit(1)

    # The microphone must be usable before any session exists
    try:
        mic = ensure_microphone(config.audio.input_device)
    except MicrophoneUnavailableError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[dim]A working microphone is required for a live session.[/dim]")
        raise typer.Exit(1)

    name = name or typer.prompt("Your name")
    subject = subject or typer.prompt("What would you like help with")
    profile = UserProfile(name=name.strip(), subject=subject.strip())

    console.print(f"\n[bold]Live Orb[/bold] - {profile.name} / {profile.subject}")
    console.print(f"Model: {config.model.model} (voice {config.model.voice})")
    console.print(f"Microphone: {mic['name']}")
    if serve:
        console.print(f"Signals: http://{config.server.host}:{config.server.port}/state")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        asyncio.run(_run_session(config, profile, serve))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
    except MicrophoneUnavailableError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


async def _run_session(config, profile, serve: bool) -> None:
    from live_orb.backends.gemini import GeminiLiveTransport, GeminiSummarizer
    from live_orb.session.capture import MicrophoneCapture
    from live_orb.session.documents import DocumentIngestor
    from live_orb.session.lifecycle import LiveSessionManager

    capture = MicrophoneCapture(
        sample_rate=config.audio.input_sample_rate,
        frame_size=config.audio.frame_size,
        device=config.audio.input_device,
    )
    manager = LiveSessionManager(GeminiLiveTransport(config.model), profile, config=config, capture=capture)

    def on_entry(entry):
        style = {"user": "cyan", "assistant": "green"}.get(entry.role, "dim")
        console.print(f"[{style}]{entry.role}:[/{style}] {entry.text}")

    def on_signal(name, old, new):
        if name == "status" and new:
            console.print(f"[dim]{new}[/dim]")
        elif name == "error" and new:
            console.print(f"[red]{new}[/red]")
        elif name == "mood":
            console.print(f"[magenta]mood: {new}[/magenta]")

    manager.history.subscribe(on_entry)
    manager.signals.subscribe(on_signal)

    server_task = None
    async with manager:
        if serve:
            import uvicorn

            from live_orb.server.app import create_app

            ingestor = DocumentIngestor(manager, GeminiSummarizer(config.model))
            server = uvicorn.Server(
                uvicorn.Config(
                    create_app(manager, ingestor=ingestor),
                    host=config.server.host,
                    port=config.server.port,
                    log_level="warning",
                )
            )
            server_task = asyncio.create_task(server.serve())

        waiters = [asyncio.create_task(manager.wait_closed())]
        if server_task is not None:
            waiters.append(server_task)
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)


@app.command()
def devices():
    """List audio devices."""
    import sounddevice as sd

    table = Table(title="Audio Devices")
    table.add_column("Index", style="cyan")
    table.add_column("Name")
    table.add_column("In")
    table.add_column("Out")
    table.add_column("Rate")

    try:
        device_list = sd.query_devices()
    except sd.PortAudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    for i, dev in enumerate(device_list):
        table.add_row(
            str(i),
            dev["name"],
            str(dev["max_input_channels"]),
            str(dev["max_output_channels"]),
            f"{int(dev['default_samplerate'])}",
        )

    console.print(table)


@app.command()
def summarize(
    file: Path = typer.Argument(..., help="Document to summarize (txt, md, pdf, source files)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset"),
    name: str = typer.Option("", "--name", "-n", help="Uploader name"),
):
    """Summarize a document with the summary model."""
    from live_orb.backends.gemini import GeminiSummarizer
    from live_orb.core.text import clip_text, extract_text

    config = _load_config(config_file)

    try:
        text = extract_text(file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not config.model.api_key:
        console.print("[red]Error: set GEMINI_API_KEY (or GOOGLE_API_KEY)[/red]")
        raise typer.Exit(1)

    summarizer = GeminiSummarizer(config.model)
    with console.status(f"Analyzing {file.name}..."):
        summary = asyncio.run(
            summarizer.summarize(file.name, clip_text(text, config.session.document_char_limit), user_name=name)
        )

    console.print(f"\n[bold]{file.name}[/bold]\n")
    console.print(summary or "[dim]No summary returned[/dim]")


@app.command()
def info(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config preset"),
):
    """Show version and effective configuration."""
    from live_orb import __version__

    config = _load_config(config_file)

    console.print(f"\n[bold]Live Orb v{__version__}[/bold]\n")

    table = Table(title="Configuration")
    table.add_column("Property")
    table.add_column("Value")

    table.add_row("API key", "set" if config.model.api_key else "[red]missing[/red]")
    table.add_row("Live model", config.model.model)
    table.add_row("Voice", config.model.voice)
    table.add_row("Summary model", config.model.summary_model)
    table.add_row("Search grounding", "Yes" if config.model.enable_search else "No")
    table.add_row("Capture", f"{config.audio.input_sample_rate} Hz, {config.audio.frame_size}-sample frames")
    table.add_row("Playback", f"{config.audio.output_sample_rate} Hz")
    table.add_row("Reconnect delay", f"{config.session.reconnect_delay:.1f}s")
    table.add_row("Moods", ", ".join(config.session.mood_vocabulary))
    table.add_row("Signal server", f"{config.server.host}:{config.server.port}")

    console.print(table)
    console.print()


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
