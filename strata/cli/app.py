"""
Defines the command-line interface for the application using Typer.

The CLI drives a headless `Session`: downloads run through the same engine a
host application uses, and their notifications are rendered live.
"""

import asyncio
import contextlib
import logging
import os
import signal
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from strata import __version__
from strata.core.session import Session
from strata.exceptions import StrataError, SubtitleLoadError
from strata.media.fetch import Fetcher, close_connection_pool
from strata.media.hls import is_master_playlist, parse_variants, resolve_media_playlist
from strata.models.config import OUTPUT_FORMATS
from strata.storage.config_manager import ConfigManager
from strata.storage.settings_repository import SettingsRepository
from strata.subtitles.formats import srt_to_vtt
from strata.utils.path import base_url, classify_source_type

from .formatters import print_config, print_probe_result, print_summary_panel
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("strata")

app = typer.Typer(
    name="strata",
    help=(
        "Headless media session tools: download progressive and HLS sources,"
        " inspect playlists and convert subtitles. Use 'strata <command> --help'"
        " for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)
subs_app = typer.Typer(help="Subtitle utilities.")
app.add_typer(subs_app, name="subs")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "strata"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """strata media session CLI"""
    if version:
        console.print(f"[bold]strata[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 0:
        log_level = "WARNING"
    logging.getLogger("strata").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]strata init[/cyan] first."
            )
            raise typer.Exit(code=1)
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(CONFIG_FILE, config.model_dump())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    download_dir: Path | None = typer.Option(
        None, "--download-dir", "-o", help="Default directory for downloads."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if download_dir is not None:
        settings["download_dir"] = str(download_dir.expanduser().resolve())
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to go! Try: [cyan]strata download <URL>[/cyan]")


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="Media file or HLS playlist URL."),
    output_format: str = typer.Option(
        "mp4",
        "-f",
        "--format",
        help="Output container for HLS downloads (mp4 or ts).",
    ),
    output_dir: Path | None = typer.Option(
        None, "-o", "--output", help="Directory to save the download in."
    ),
    buffered: bool = typer.Option(
        False,
        "--buffered",
        help="Assemble HLS segments in memory instead of writing them directly.",
    ),
):
    """Download a progressive file or an HLS stream."""
    if output_format not in OUTPUT_FORMATS:
        console.print(
            f"[red]✗ Unknown format '{output_format}'.[/red] "
            f"Choose one of: {', '.join(sorted(OUTPUT_FORMATS))}"
        )
        raise typer.Exit(code=1)

    cli_options = {
        key: value
        for key, value in {
            "download_dir": str(output_dir) if output_dir else None,
            "direct_write": False if buffered else None,
        }.items()
        if value is not None
    }

    async def _download_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        session = Session(
            config,
            settings=SettingsRepository(CONFIG_DIR),
            open_url=typer.launch,
        )
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, session.downloader.cancel_all)

        path = None
        start_time = time.monotonic()
        try:
            async with ProgressManager(console, session.store) as progress_manager:
                if classify_source_type(url) == "hls":
                    path = await session.download_hls(url, output_format)
                else:
                    path = await session.download(url)
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            session.destroy()
            await close_connection_pool()

        print_summary_panel(progress_manager.summary(), time.monotonic() - start_time)
        if path is None:
            raise typer.Exit(code=1)
        console.print(f"[green]✓ Saved to '{path}'[/green]")

    asyncio.run(_download_async())


@app.command()
def probe(url: str = typer.Argument(..., help="Source URL to inspect.")):
    """Classify a source and, for HLS, list its variants and segments."""
    source_type = classify_source_type(url)
    if source_type != "hls":
        print_probe_result(url, source_type)
        return

    async def _probe_async():
        config = ConfigManager(CONFIG_FILE).load_config()
        fetcher = Fetcher.from_config(config)
        try:
            result = await fetcher.fetch_with_retry(url)
            result.unwrap()
            variants = None
            if is_master_playlist(result.text):
                variants = parse_variants(result.text, base_url(url))
            playlist = await resolve_media_playlist(fetcher, url)
        finally:
            await close_connection_pool()
        print_probe_result(url, source_type, variants, playlist)

    asyncio.run(_probe_async())


@subs_app.command("convert")
def subs_convert(
    file: Path = typer.Argument(..., help="SubRip or WebVTT file to convert."),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Where to write the WebVTT file."
    ),
):
    """Convert a SubRip (.srt) file to WebVTT."""
    try:
        text = file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SubtitleLoadError(f"Could not read '{file}': {e}") from e

    target = output or file.with_suffix(".vtt")
    if target == file:
        console.print("[red]✗ Output would overwrite the input file.[/red]")
        raise typer.Exit(code=1)
    try:
        target.write_text(srt_to_vtt(text), encoding="utf-8")
    except OSError as e:
        raise StrataError(f"Could not write '{target}': {e}") from e
    console.print(f"[green]✓ Wrote '{target}'[/green]")
