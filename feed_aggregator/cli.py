"""Command line interface for the feed aggregator."""

import asyncio
import sys
from functools import wraps
from typing import Optional

import click
from bs4 import BeautifulSoup
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import settings
from .core.exceptions import FeedAggregatorError
from .core.http_client import AsyncHTTPClient
from .database import AsyncSessionLocal, close_db_engine, init_db
from .extraction import StructuralExtractor
from .orchestrator import FeedUpdateOrchestrator, UpdateOutcome
from .processing.entry_view import build_entry_views
from .schemas import FeedDescriptor, FeedType
from .services.media_cache_service import MediaCacheService
from .services.notifier import Notifier, UpdateEvent
from .services.repository import EntryRepository, FeedRepository
from .sources.html_source import parse_html_feed
from .utils.logging_config import setup_logging

console = Console()

OUTCOME_STYLES = {
    UpdateOutcome.UPDATED: "green",
    UpdateOutcome.NOT_MODIFIED: "cyan",
    UpdateOutcome.SKIPPED: "yellow",
    UpdateOutcome.FAILED: "red",
}


def async_command(f):
    """Decorator to run async CLI commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def _shorten(text: Optional[str], width: int = 60) -> str:
    if not text:
        return ""
    text = " ".join(text.split())
    return text if len(text) <= width else text[:width - 3] + "..."


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Override the configured log level')
def cli(log_level: Optional[str]):
    """Feed Aggregator - collect feeds and HTML pages into one local store."""
    setup_logging(level=log_level)


@cli.command('init-db')
@async_command
async def init_db_command():
    """Create the database tables."""
    try:
        await init_db()
        console.print(f"[green]✅ Database ready at {settings.get_database_url()}[/green]")
    except RuntimeError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    finally:
        await close_db_engine()


@cli.command()
@click.option('--url', default=None, help='Update only this feed')
@click.option('--force', is_flag=True, help='Ignore cached ETag/Last-Modified validators')
@click.option('--verbose', '-v', is_flag=True, help='Print progress events')
@async_command
async def update(url: Optional[str], force: bool, verbose: bool):
    """Fetch configured feeds and store their entries."""
    await init_db()
    notifier = Notifier()
    if verbose:
        notifier.add_listener(lambda n: console.print(f"[dim]{n}[/dim]"))

    try:
        async with AsyncHTTPClient() as http_client:
            orchestrator = FeedUpdateOrchestrator(
                http_client=http_client,
                notifier=notifier,
                media_store=MediaCacheService(http_client),
            )
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Updating feeds...", total=None)

                def show_feed(notification):
                    if notification.event == UpdateEvent.SWEEP_FEED.value:
                        progress.update(task, description=f"Updating {notification.info[0]}")

                notifier.add_listener(show_feed)
                if url:
                    results = [await orchestrator.update_feed(url, force=force)]
                else:
                    results = await orchestrator.update_all(force=force)
    finally:
        await close_db_engine()

    if not results:
        console.print("[yellow]No feeds configured.[/yellow]")
        return

    table = Table(title="Update Results")
    table.add_column("Feed", style="cyan")
    table.add_column("Outcome")
    table.add_column("Status", style="white")
    for result in results:
        style = OUTCOME_STYLES.get(result.outcome, "white")
        table.add_row(result.url, f"[{style}]{result.outcome.value}[/{style}]", result.message or "")
    console.print(table)

    if any(not result.ok for result in results):
        sys.exit(1)


@cli.command()
@async_command
async def feeds():
    """List stored feeds."""
    await init_db()
    try:
        async with AsyncSessionLocal() as session:
            feed_list = await FeedRepository().list(session)
    finally:
        await close_db_engine()

    if not feed_list:
        console.print("[yellow]No feeds stored yet. Run 'update' first.[/yellow]")
        return

    table = Table(title="Feeds")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white", max_width=40)
    table.add_column("URL", style="blue")
    table.add_column("Status")
    table.add_column("Last Status", max_width=50)
    for feed in feed_list:
        table.add_row(str(feed.id), feed.name or "", feed.url, feed.status or "", feed.last_status or "")
    console.print(table)


@cli.command()
@click.option('--feed', 'feed_url', default=None, help='Only entries of this feed URL')
@click.option('--limit', default=None, type=int, help='Maximum number of entries')
@async_command
async def entries(feed_url: Optional[str], limit: Optional[int]):
    """List stored entries, newest first."""
    await init_db()
    try:
        async with AsyncSessionLocal() as session:
            feed_id = None
            if feed_url:
                feed = await FeedRepository().get_by_url(session, feed_url)
                if feed is None:
                    console.print(f"[red]❌ Unknown feed: {feed_url}[/red]")
                    sys.exit(1)
                feed_id = feed.id
            entry_list = await EntryRepository().list(session, feed_id=feed_id)
    finally:
        await close_db_engine()

    views = build_entry_views(entry_list, MediaCacheService(http_client=None))
    views = views[:limit or settings.result_limit]
    if not views:
        console.print("[yellow]No entries.[/yellow]")
        return

    table = Table(title="Entries")
    table.add_column("Published", style="cyan")
    table.add_column("Title", style="white", max_width=50)
    table.add_column("Link", style="blue")
    for view in views:
        table.add_row(view.rel_published or "", _shorten(view.title), view.link)
    console.print(table)


@cli.command()
@click.argument('url')
@click.argument('selector')
@click.option('--entries', 'as_entries', is_flag=True, help='Treat SELECTOR as the entries query')
@click.option('--link', default=None, help='Entry link query (with --entries)')
@click.option('--title', default=None, help='Entry title query (with --entries)')
@async_command
async def query(url: str, selector: str, as_entries: bool, link: Optional[str], title: Optional[str]):
    """Run an extraction query against a live page."""
    try:
        async with AsyncHTTPClient() as http_client:
            response = await http_client.fetch(url)
    except FeedAggregatorError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    if not response.ok:
        console.print(f"[red]❌ HTTP {response.status} for {url}[/red]")
        sys.exit(1)

    base_url = response.url or url
    if as_entries:
        descriptor = FeedDescriptor(
            url=url, type=FeedType.HTML,
            css_entries=selector, css_entry_link=link, css_entry_title=title,
        )
        parsed = parse_html_feed(response.text, descriptor, base_url=base_url, allow_invalid=True)
        table = Table(title=f"{len(parsed.items)} entries - {parsed.title or url}")
        table.add_column("#", style="cyan")
        table.add_column("Title", style="white", max_width=50)
        table.add_column("Link", style="blue")
        for index, item in enumerate(parsed.items, 1):
            table.add_row(str(index), _shorten(item.title), item.link or "")
        console.print(table)
        return

    soup = BeautifulSoup(response.text, 'html.parser')
    extractor = StructuralExtractor(base_url=base_url)
    matches = extractor.extract_all(selector, soup)
    value = extractor.extract(selector, soup)
    console.print(f"[bold blue]Matches:[/bold blue] {len(matches)}")
    console.print(f"[bold blue]Value:[/bold blue] {value!r}")


def main():
    cli()


if __name__ == '__main__':
    main()
