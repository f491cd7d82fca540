"""Command-line entry point for Playlist Bridge."""

from __future__ import annotations

import threading

import click
from rich.console import Console
from rich.table import Table

from playlist_bridge.dependencies import (
    ConversionDirection,
    build_pipeline,
    get_settings,
    get_youtube_client,
)
from playlist_bridge.logging_config import configure_application_logging
from playlist_bridge.services.conversion_pipeline import (
    Accepted,
    ConversionReport,
    ConversionRequest,
)
from playlist_bridge.services.playlist_ids import PreconditionError
from playlist_bridge.services.providers.base import ProviderAuthError, ProviderError

console = Console()

_PROBE_STYLES = {
    "available": "green",
    "quota_exceeded": "red",
    "access_denied": "yellow",
}


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Playlist Bridge - copy playlists between Spotify and YouTube."""
    configure_application_logging(get_settings())


@click.group()
def convert():
    """Convert a playlist into a new playlist on the other service."""


@click.command(name="spotify-to-youtube")
@click.argument("playlist")
@click.argument("name")
@click.option("--spotify-token", envvar="PLAYLIST_BRIDGE_SPOTIFY_TOKEN", required=True)
@click.option("--youtube-token", envvar="PLAYLIST_BRIDGE_YOUTUBE_TOKEN", required=True)
@click.option("--batch-size", type=int, default=None, help="Maximum tracks to convert.")
@click.option("--broad", is_flag=True, help="Cheaper single-result matching.")
@click.option("--show-items", is_flag=True, help="Print one row per source item.")
def spotify_to_youtube(
    playlist: str,
    name: str,
    spotify_token: str,
    youtube_token: str,
    batch_size: int | None,
    broad: bool,
    show_items: bool,
):
    """Copy a Spotify playlist into a new YouTube playlist."""
    settings = get_settings()
    request = ConversionRequest(
        source_token=spotify_token,
        destination_token=youtube_token,
        source_playlist=playlist,
        playlist_name=name,
        precise=not broad,
        batch_limit=batch_size if batch_size is not None else settings.default_batch_limit,
    )
    _run(request, direction="spotify-to-youtube", show_items=show_items)


@click.command(name="youtube-to-spotify")
@click.argument("playlist")
@click.argument("name")
@click.option("--youtube-token", envvar="PLAYLIST_BRIDGE_YOUTUBE_TOKEN", required=True)
@click.option("--spotify-token", envvar="PLAYLIST_BRIDGE_SPOTIFY_TOKEN", required=True)
@click.option("--batch-size", type=int, default=None, help="Maximum videos to convert.")
@click.option("--broad", is_flag=True, help="Cheaper single-result matching.")
@click.option("--show-items", is_flag=True, help="Print one row per source item.")
def youtube_to_spotify(
    playlist: str,
    name: str,
    youtube_token: str,
    spotify_token: str,
    batch_size: int | None,
    broad: bool,
    show_items: bool,
):
    """Copy a YouTube playlist into a new Spotify playlist."""
    request = ConversionRequest(
        source_token=youtube_token,
        destination_token=spotify_token,
        source_playlist=playlist,
        playlist_name=name,
        precise=not broad,
        batch_limit=batch_size,
    )
    _run(request, direction="youtube-to-spotify", show_items=show_items)


@click.command()
@click.option("--youtube-token", envvar="PLAYLIST_BRIDGE_YOUTUBE_TOKEN", required=True)
def quota(youtube_token: str):
    """Check whether the YouTube Data API still accepts requests."""
    try:
        probe = get_youtube_client().probe_quota(youtube_token)
    except ProviderError as exc:
        raise click.ClickException(str(exc)) from exc

    style = _PROBE_STYLES.get(probe.status, "white")
    console.print(f"[{style}]{probe.status}[/{style}] {probe.message}")
    if probe.status != "available":
        raise SystemExit(1)


def _run(request: ConversionRequest, *, direction: ConversionDirection, show_items: bool):
    settings = get_settings()
    pipeline = build_pipeline(direction)
    cancel_event = threading.Event()
    result: dict[str, object] = {}

    def _worker() -> None:
        try:
            result["report"] = pipeline.run(
                request,
                cancel_event=cancel_event,
                deadline_seconds=settings.run_deadline_seconds,
            )
        except (PreconditionError, ProviderError) as exc:
            result["error"] = exc

    worker = threading.Thread(target=_worker, name="conversion-run", daemon=True)
    worker.start()
    try:
        with console.status(f"Converting ({direction})..."):
            while worker.is_alive():
                worker.join(timeout=0.2)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling after the current item...[/yellow]")
        cancel_event.set()
        worker.join()

    error = result.get("error")
    if isinstance(error, ProviderAuthError):
        if error.partial_report is not None:
            _print_report(error.partial_report, show_items=show_items)
        raise click.ClickException(f"Authorization failed: {error}")
    if isinstance(error, Exception):
        raise click.ClickException(str(error))

    report = result.get("report")
    if isinstance(report, ConversionReport):
        _print_report(report, show_items=show_items)


def _print_report(report: ConversionReport, *, show_items: bool):
    table = Table(title="Conversion report", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("Playlist", report.destination_playlist_id or "-")
    table.add_row("Source items", str(report.total_source))
    table.add_row("Processed", str(report.processed))
    table.add_row("Added", f"[green]{report.added}[/green]")
    table.add_row("Skipped", f"[yellow]{report.skipped}[/yellow]")
    table.add_row("Quota used", str(report.quota_used))
    table.add_row("Estimated max items", str(report.estimated_max_items))
    table.add_row("Stop reason", report.stop_reason)
    console.print(table)

    if report.truncated:
        remaining = report.total_source - report.processed
        console.print(
            f"[yellow]Stopped early ({report.stop_reason}); {remaining} items left.[/yellow]"
        )

    if not show_items:
        return
    items = Table(title="Items")
    items.add_column("#", justify="right")
    items.add_column("Query")
    items.add_column("Result")
    for outcome in report.outcomes:
        decision = outcome.decision
        if isinstance(decision, Accepted):
            result = f"[green]added[/green] {decision.candidate_title or decision.candidate_id}"
        else:
            result = f"[yellow]skipped[/yellow] {decision.reason}"
        items.add_row(str(outcome.index + 1), outcome.query or "-", result)
    console.print(items)


convert.add_command(spotify_to_youtube)
convert.add_command(youtube_to_spotify)

main.add_command(convert)
main.add_command(quota)


if __name__ == "__main__":
    main()
