"""CLI for stream-progress tool."""

import os
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from stream_progress import __version__
from stream_progress.config import Config, ConfigError
from stream_progress.logs import setup_logging
from stream_progress.models import (
    MEDIA_TYPES,
    PlaybackPosition,
    StreamRequest,
    TitleMetadata,
)
from stream_progress.progress_store import ProgressStore
from stream_progress.resolver import StreamResolver
from stream_progress.storage import DataStore
from stream_progress.tmdb import TmdbClient, TmdbError

console = Console()

media_type_option = click.option(
    "--type",
    "media_type",
    type=click.Choice(MEDIA_TYPES),
    required=True,
    help="Media type",
)


def get_data_dir() -> Path:
    """Get data directory from env or default."""
    env_dir = os.environ.get("STREAM_PROGRESS_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


def load_config() -> Config:
    """Load config if present, otherwise use defaults."""
    config = Config(data_dir=get_data_dir())
    if config.exists():
        try:
            config.load()
        except ConfigError as e:
            console.print(f"[red]Invalid configuration:[/red] {e}")
            raise SystemExit(1)
    config.apply_env()
    return config


def build_store(config: Config) -> ProgressStore:
    return ProgressStore(
        DataStore(data_dir=config.data_dir),
        cache_ttl_ms=config.cache_ttl_ms,
        image_base_url=config.tmdb_image_base_url,
    )


def build_resolver(config: Config) -> StreamResolver:
    return StreamResolver(
        timeout=config.resolver_timeout,
        user_agent=config.user_agent,
    )


def check_episode(media_type, season, episode):
    if media_type == "tv" and not (season and episode):
        console.print("[red]Error:[/red] --season and --episode are required for tv.")
        raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Show debug logging")
def cli(verbose):
    """Stream progress tool - Continue watching ledger and stream resolver."""
    setup_logging(Config(data_dir=get_data_dir()).log_path, verbose=verbose)


@cli.command()
def setup():
    """Interactive setup to configure TMDB access."""
    config = Config(data_dir=get_data_dir())

    # Warn if config exists
    if config.exists():
        console.print(
            "[yellow]Configuration already exists at:[/yellow] "
            f"{config.config_path}"
        )
        if not click.confirm("Overwrite existing configuration?"):
            console.print("[dim]Setup cancelled.[/dim]")
            return

    console.print("\n[bold]Stream Progress Setup[/bold]\n")

    api_key = click.prompt(
        "TMDB API key (leave empty to skip)",
        default="",
        show_default=False,
        type=str,
    )
    config.set_tmdb_api_key(api_key.strip())
    config.save()

    console.print("\n[green]✓ Setup complete![/green]")
    console.print(f"  Config saved to: {config.config_path}")


@cli.command()
@click.argument("media_id", type=int)
@media_type_option
@click.option("--season", type=click.IntRange(min=1), help="Season number (tv)")
@click.option("--episode", type=click.IntRange(min=1), help="Episode number (tv)")
@click.option("--check", is_flag=True, help="Check that the stream URL responds")
def resolve(media_id, media_type, season, episode, check):
    """Resolve a direct stream URL for a movie or episode."""
    check_episode(media_type, season, episode)
    config = load_config()
    resolver = build_resolver(config)

    request = StreamRequest(
        media_id=media_id,
        media_type=media_type,
        season=season,
        episode=episode,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Resolving stream...", total=None)
        stream = resolver.resolve(request)

    if stream is None:
        console.print("[red]✗ No stream found.[/red] All providers failed.")
        raise SystemExit(2)

    console.print(f"[green]✓ Found stream[/green] via {stream.provider}")
    console.print(stream.url, soft_wrap=True)

    if check:
        if resolver.check_stream_url(stream.url, timeout=config.health_check_timeout):
            console.print("[green]✓ Stream URL is reachable[/green]")
        else:
            console.print("[yellow]Stream URL did not respond.[/yellow]")
            raise SystemExit(2)


@cli.command("check-url")
@click.argument("url")
def check_url(url):
    """Check that a stream URL is reachable."""
    config = load_config()
    resolver = build_resolver(config)

    if resolver.check_stream_url(url, timeout=config.health_check_timeout):
        console.print("[green]✓ Reachable[/green]")
    else:
        console.print("[red]✗ Not reachable[/red]")
        raise SystemExit(2)


def lookup_metadata(config: Config, media_type: str, media_id: int) -> TitleMetadata:
    """Fetch title metadata from TMDB, falling back to an empty record."""
    if not config.tmdb_configured:
        return TitleMetadata()

    client = TmdbClient(config.tmdb_api_key, base_url=config.tmdb_base_url)
    try:
        return client.get_title_metadata(media_type, media_id)
    except TmdbError as e:
        console.print(f"[yellow]Metadata lookup failed:[/yellow] {e}")
        return TitleMetadata()


@cli.command()
@click.argument("media_id", type=int)
@media_type_option
@click.option("--time", "current_time", type=float, required=True, help="Watched seconds")
@click.option("--duration", type=float, required=True, help="Total seconds")
@click.option("--season", type=click.IntRange(min=1), help="Season number (tv)")
@click.option("--episode", type=click.IntRange(min=1), help="Episode number (tv)")
@click.option("--title", help="Title (looked up on TMDB when omitted)")
@click.option("--poster-path", help="TMDB poster path")
@click.option("--backdrop-path", help="TMDB backdrop path")
def update(media_id, media_type, current_time, duration, season, episode, title,
           poster_path, backdrop_path):
    """Record the playback position of a movie or episode."""
    check_episode(media_type, season, episode)
    config = load_config()
    store = build_store(config)

    if title:
        metadata = TitleMetadata(
            title=title,
            poster_path=poster_path,
            backdrop_path=backdrop_path,
        )
    else:
        metadata = lookup_metadata(config, media_type, media_id)

    playback = PlaybackPosition(
        current_time=current_time,
        duration=duration,
        season=season,
        episode=episode,
    )

    if not store.update_current_progress(media_id, media_type, playback, metadata):
        console.print("[red]✗ Failed to save progress.[/red]")
        raise SystemExit(2)

    console.print(f"[green]✓ Progress saved[/green] ({store.count()} items)")


@cli.command("list")
def list_items():
    """Show the continue watching list."""
    config = load_config()
    items = build_store(config).load_for_display()

    if not items:
        console.print("[yellow]Nothing to continue watching.[/yellow]")
        return

    table = Table(title="Continue Watching")
    table.add_column("Type", style="cyan")
    table.add_column("ID")
    table.add_column("Title", style="bold")
    table.add_column("Episode")
    table.add_column("Progress", style="green", justify="right")
    table.add_column("Updated", style="dim")

    for item in items:
        episode = ""
        if item.media_type == "tv":
            episode = f"S{item.last_season_watched}E{item.last_episode_watched}"
        updated = ""
        if item.last_updated:
            updated = datetime.fromtimestamp(item.last_updated / 1000).strftime(
                "%Y-%m-%d %H:%M"
            )
        table.add_row(
            item.media_type,
            str(item.id),
            item.title,
            episode,
            f"{item.progress_percent}%",
            updated,
        )

    console.print(table)


@cli.command()
@click.argument("media_id", type=int)
@media_type_option
@click.option("--season", type=click.IntRange(min=1), help="Season number (tv)")
@click.option("--episode", type=click.IntRange(min=1), help="Episode number (tv)")
def show(media_id, media_type, season, episode):
    """Show saved progress for a movie or episode."""
    check_episode(media_type, season, episode)
    store = build_store(load_config())

    if media_type == "tv":
        snapshot = store.get_episode_progress(media_id, season, episode)
    else:
        snapshot = store.get_movie_progress(media_id)

    if snapshot is None:
        console.print("[yellow]No progress saved.[/yellow]")
        return

    console.print(
        f"Watched {snapshot.watched:g}s of {snapshot.duration:g}s "
        f"([green]{snapshot.progress_percent}%[/green])"
    )


@cli.command()
@click.argument("media_id", type=int)
@media_type_option
def remove(media_id, media_type):
    """Remove a title from continue watching."""
    store = build_store(load_config())
    result = store.remove_item(media_id, media_type)

    if not result.success:
        console.print(f"[red]Remove failed:[/red] {result.error}")
        raise SystemExit(2)

    if result.removed is None:
        console.print(f"[yellow]{result.message}[/yellow]")
        return

    console.print(
        f"[green]✓ Removed {result.removed.title}[/green] "
        f"({result.remaining_count} remaining)"
    )


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def clear(yes):
    """Delete all continue watching data."""
    store = build_store(load_config())

    if not yes and not click.confirm("Delete all continue watching data?"):
        console.print("[dim]Cancelled.[/dim]")
        return

    if not store.clear_all():
        console.print("[red]✗ Failed to clear data.[/red]")
        raise SystemExit(2)

    console.print("[green]✓ All continue watching data cleared![/green]")


if __name__ == "__main__":
    cli()
