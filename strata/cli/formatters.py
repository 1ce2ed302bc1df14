"""
Rich renderables for errors, configuration, probe results and summaries.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from strata.media.hls import MediaPlaylist, Variant
from strata.utils.formatting import format_duration, format_size

SUGGESTIONS: dict[str, list[str]] = {
    "ConfigurationError": [
        "Check the values in your configuration file.",
        "Run `strata init --force` to write a fresh default configuration.",
    ],
    "UnsupportedContentError": [
        "The stream is encrypted (DRM) and cannot be downloaded.",
        "Only unencrypted HLS streams are supported.",
    ],
    "UnsupportedSourceError": [
        "Check that the URL points to a media file or playlist.",
        "In-memory (blob:) sources cannot be downloaded.",
    ],
    "DownloadError": [
        "The playlist may be empty or unreachable.",
        "Run `strata probe <URL>` to inspect the source.",
    ],
    "FetchError": [
        "A network request failed after all retries.",
        "Check your internet connection and try again.",
    ],
    "SubtitleLoadError": [
        "Make sure the file is SubRip (.srt) or WebVTT (.vtt).",
        "Check the file encoding is UTF-8.",
    ],
    "ClientError": [
        "The server might be temporarily unavailable.",
        "Please try again in a few minutes.",
    ],
    "TimeoutError": [
        "Raise `fetch_timeout` in your configuration.",
    ],
}


def _suggestions_for(error: Exception) -> list[str]:
    # Subclasses fall back to the advice for their nearest listed base.
    for cls in type(error).__mro__:
        if cls.__name__ in SUGGESTIONS:
            return SUGGESTIONS[cls.__name__]
    return ["Run the command with -vv for detailed logs."]


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    headline = Text.assemble(
        (f"{type(error).__name__}: ", "bold red"), str(error) or "no details"
    )
    tips = Text("\n".join(f"• {tip}" for tip in _suggestions_for(error)))

    parts = [headline, Text(), Text("Suggestions", style="bold yellow"), tips]
    if context:
        parts += [Text(), Text(f"Context: {context}", style="dim")]

    return Panel(
        Group(*parts),
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="cyan")
    table.add_column()
    for key, value in sorted(config_data.items()):
        table.add_row(key, f"= {value}")

    Console().print(
        Panel(
            table,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
            expand=False,
        )
    )


def print_probe_result(
    url: str,
    source_type: str,
    variants: list[Variant] | None = None,
    playlist: MediaPlaylist | None = None,
):
    """Displays what `probe` found out about a source."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("URL:", f"[dim]{url}[/dim]")
    table.add_row("Type:", f"[green]{source_type}[/green]")

    if playlist is not None:
        table.add_row("Segments:", str(len(playlist.segments)))
        if playlist.target_duration:
            total = playlist.target_duration * len(playlist.segments)
            table.add_row("Duration:", f"~{format_duration(total)}")
        table.add_row("Live:", "✓ Yes" if playlist.is_live else "✗ No")

    console.print(
        Panel(table, title="[bold]🔎 Source[/bold]", border_style="cyan", expand=False)
    )

    if variants:
        best = playlist.variant if playlist is not None else None
        variant_table = Table(box=box.ROUNDED, title="[bold]Variants[/bold]")
        variant_table.add_column("Bandwidth", justify="right", style="magenta")
        variant_table.add_column("Resolution")
        variant_table.add_column("Codecs", style="dim")
        variant_table.add_column("", justify="center")
        for variant in variants:
            variant_table.add_row(
                f"{format_size(variant.bandwidth / 8)}/s",
                variant.resolution or "-",
                variant.codecs or "-",
                "[green]✓[/green]" if variant == best else "",
            )
        console.print(variant_table)


def print_summary_panel(stats: Table, duration_s: float):
    """Displays the final summary of a download session."""
    console = Console()
    stats.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")
    console.print()
    console.print(
        Panel(
            stats,
            title="🎬 [bold]Download Finished[/bold]",
            border_style="green",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
