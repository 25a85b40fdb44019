#!/usr/bin/env python3
"""
Safha Ingest - News Ingestion Pipeline
======================================

Command line interface for operating the ingestion pipeline.

Usage:
    python main.py --help                      # Show all commands
    python main.py check-config                # Validate configuration
    python main.py init-db                     # Initialize database
    python main.py add-source NAME FEED_URL    # Register an RSS source
    python main.py show-sources                # List sources and their health
    python main.py reset-source ID             # Re-enable a source after repeated failures
    python main.py set-active ID --disable     # Stop scheduling a source
    python main.py stats                       # Article counts and database size
    python main.py fetch --limit 10            # Run one ingestion pass
    python main.py fetch-content URL           # Extract a single article page
    python main.py backfill-content            # Fill missing article bodies
    python main.py backfill-images             # Fill missing lead images
    python main.py serve                       # Start the HTTP trigger
"""

import sys
import asyncio

import click
from rich.console import Console
from rich.table import Table

from safha_ingest.config.settings import get_settings
from safha_ingest.database.schema import DatabaseSchema
from safha_ingest.database.connection import get_db_manager
from safha_ingest.database.models import RssSource
from safha_ingest.storage.source_repository import SourceRepository
from safha_ingest.storage.article_repository import ArticleRepository
from safha_ingest.processing.pipeline import IngestionPipeline
from safha_ingest.processing.backfill import BackfillService
from safha_ingest.utils.logging import configure_application_logging
from safha_ingest.utils.exceptions import SafhaError
from safha_ingest.utils.validators import URLValidator
from safha_ingest.utils.text import truncate

console = Console()


def _setup(debug: bool = False):
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )
    return settings


def _fail(message: str) -> None:
    console.print(f"[bold red]❌ {message}[/bold red]")
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """Safha Ingest - RSS ingestion and article extraction."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate environment configuration."""
    console.print("[bold blue]🔧 Checking configuration[/bold blue]")

    try:
        settings = get_settings()
    except SafhaError as e:
        _fail(f"Configuration error: {e.user_message}")

    table = Table(title="Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Details")

    table.add_row("Database", f"{settings.database.path} (pool {settings.database.pool_size})")
    table.add_row("Logging", f"{settings.logging.level.value} -> {settings.logging.file_path or 'console only'}")
    table.add_row("Fetch", f"feeds {settings.fetch.feed_timeout}s, pages {settings.fetch.page_timeout}s")
    table.add_row(
        "Scheduling",
        f"batch {settings.scheduling.default_batch_size}/{settings.scheduling.max_batch_size}, "
        f"groups of {settings.scheduling.concurrency_group_size}, "
        f"stale after {settings.scheduling.stale_minutes}m, "
        f"excluded at {settings.scheduling.max_source_errors} errors",
    )
    table.add_row("CORS", ", ".join(settings.api.allowed_origins))

    console.print(table)
    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.pass_context
def init_db(ctx):
    """Create database tables."""
    settings = _setup(ctx.obj.get('debug'))
    console.print(f"[bold blue]🗄️  Initializing database at {settings.database.path}[/bold blue]")

    schema = DatabaseSchema(settings.database.path)
    schema.create_tables()

    if schema.verify_schema():
        console.print("[bold green]✅ Database schema created and verified[/bold green]")
    else:
        _fail("Database schema verification failed")


@cli.command()
@click.argument('name')
@click.argument('feed_url')
@click.option('--website-url', default=None, help='Publisher home page')
@click.option('--language', type=click.Choice(['ar', 'en']), default='ar', help='Publication language')
@click.option('--category', default=None, help='Editorial category')
@click.pass_context
def add_source(ctx, name, feed_url, website_url, language, category):
    """Register a new RSS/Atom source."""
    _setup(ctx.obj.get('debug'))

    try:
        source = RssSource(
            name=name,
            feed_url=URLValidator.validate_feed_url(feed_url),
            website_url=website_url,
            language=language,
            category=category,
        )
        source_id = SourceRepository(get_db_manager()).create_source(source)
    except SafhaError as e:
        _fail(e.user_message)

    console.print(f"[bold green]✅ Added source #{source_id}: {name}[/bold green]")
    if not URLValidator.is_likely_feed_url(source.feed_url):
        console.print("[yellow]⚠️  URL does not look like a feed; check it with 'fetch' before relying on it[/yellow]")


@cli.command()
@click.option('--active-only', is_flag=True, help='Hide inactive sources')
@click.pass_context
def show_sources(ctx, active_only):
    """List sources with their fetch health."""
    settings = _setup(ctx.obj.get('debug'))
    repo = SourceRepository(get_db_manager())
    sources = repo.list_sources(active_only=active_only)

    if not sources:
        console.print("[yellow]No sources configured[/yellow]")
        return

    max_errors = settings.scheduling.max_source_errors
    table = Table(title=f"RSS Sources ({len(sources)})")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Lang")
    table.add_column("Status")
    table.add_column("Errors", justify="right")
    table.add_column("Last fetched")
    table.add_column("Last error", overflow="fold")

    for source in sources:
        if not source.is_active:
            status = "[dim]inactive[/dim]"
        elif not source.is_schedulable(max_errors):
            status = "[red]excluded[/red]"
        elif source.error_count:
            status = "[yellow]degraded[/yellow]"
        else:
            status = "[green]healthy[/green]"

        table.add_row(
            str(source.id),
            source.name,
            source.language,
            status,
            str(source.error_count),
            source.last_fetched_at.strftime("%Y-%m-%d %H:%M") if source.last_fetched_at else "never",
            truncate(source.last_error, 80) or "",
        )

    console.print(table)


@cli.command()
@click.argument('source_id', type=int)
@click.pass_context
def reset_source(ctx, source_id):
    """Clear a source's error streak so it is scheduled again."""
    _setup(ctx.obj.get('debug'))

    if SourceRepository(get_db_manager()).reset_source_health(source_id):
        console.print(f"[bold green]✅ Source #{source_id} reset[/bold green]")
    else:
        _fail(f"No source with ID {source_id}")


@cli.command()
@click.argument('source_id', type=int)
@click.option('--disable', is_flag=True, help='Stop scheduling the source')
@click.pass_context
def set_active(ctx, source_id, disable):
    """Enable or disable a source."""
    _setup(ctx.obj.get('debug'))

    if SourceRepository(get_db_manager()).set_active(source_id, not disable):
        state = "disabled" if disable else "enabled"
        console.print(f"[bold green]✅ Source #{source_id} {state}[/bold green]")
    else:
        _fail(f"No source with ID {source_id}")


@cli.command()
@click.option('--limit', type=int, default=None, help='Sources to fetch (default 10, max 20)')
@click.pass_context
def fetch(ctx, limit):
    """Run one ingestion pass over due sources."""
    settings = _setup(ctx.obj.get('debug'))
    pipeline = IngestionPipeline(get_db_manager(), settings=settings)

    console.print("[bold blue]📡 Fetching due sources[/bold blue]")
    result = asyncio.run(pipeline.run(limit=limit))

    if result.message:
        console.print(f"[yellow]{result.message}[/yellow]")
        return

    table = Table(title="Ingestion results")
    table.add_column("Source", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Error", style="red", overflow="fold")

    for item in result.results:
        table.add_row(item.source_name, str(item.articles_fetched), str(item.new_articles), item.error or "")

    console.print(table)
    summary = result.summary
    console.print(
        f"[bold]{summary.sources_processed}[/bold] sources, "
        f"[bold]{summary.total_articles_fetched}[/bold] entries, "
        f"[bold green]{summary.total_new_articles}[/bold green] new, "
        f"[bold red]{summary.errors}[/bold red] errors "
        f"in {result.duration_seconds:.1f}s"
    )


@cli.command()
@click.argument('url')
@click.option('--show-text', is_flag=True, help='Print the extracted text')
@click.pass_context
def fetch_content(ctx, url, show_text):
    """Extract image, video and full text from one article URL."""
    settings = _setup(ctx.obj.get('debug'))
    service = BackfillService(get_db_manager(), settings=settings)

    try:
        extraction = asyncio.run(service.fetch_content(url))
    except SafhaError as e:
        _fail(e.user_message)

    table = Table(title=url)
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("Method", extraction.extraction_method)
    table.add_row("Quality", f"{extraction.content_quality:.2f}")
    table.add_row("Length", str(len(extraction.full_content or "")))
    table.add_row("Image", extraction.image_url or "-")
    table.add_row("Video", f"{extraction.video_url} ({extraction.video_type})" if extraction.video_url else "-")
    table.add_row("Byline", extraction.byline or "-")
    console.print(table)

    if show_text and extraction.full_content:
        console.print(extraction.full_content)


def _print_report(title: str, report) -> None:
    console.print(
        f"[bold]{title}:[/bold] {report.processed} processed, "
        f"[green]{report.updated} updated[/green], [red]{report.failed} failed[/red]"
    )


@cli.command()
@click.option('--limit', type=int, default=None, help='Articles to revisit (max 50)')
@click.pass_context
def backfill_content(ctx, limit):
    """Extract bodies for pending articles stored without one."""
    settings = _setup(ctx.obj.get('debug'))
    report = asyncio.run(BackfillService(get_db_manager(), settings=settings).backfill_content(limit))
    _print_report("Content backfill", report)


@cli.command()
@click.option('--limit', type=int, default=None, help='Articles to revisit (max 50)')
@click.pass_context
def backfill_images(ctx, limit):
    """Find lead images for articles stored without one."""
    settings = _setup(ctx.obj.get('debug'))
    report = asyncio.run(BackfillService(get_db_manager(), settings=settings).backfill_images(limit))
    _print_report("Image backfill", report)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show article counts by status and database size."""
    _setup(ctx.obj.get('debug'))
    db = get_db_manager()
    counts = ArticleRepository(db).count_by_status()
    info = db.get_database_info()

    table = Table(title="Raw articles")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    for status, total in sorted(counts.items()):
        table.add_row(status, str(total))
    console.print(table)

    console.print(
        f"Database: {info['database_size_mb']:.2f} MB, "
        f"{info['table_counts']['rss_sources']} sources, "
        f"{info['table_counts']['raw_articles']} articles"
    )


@cli.command()
@click.option('--host', default=None, help='Bind address (default from settings)')
@click.option('--port', type=int, default=None, help='Bind port (default from settings)')
@click.pass_context
def serve(ctx, host, port):
    """Start the HTTP trigger server."""
    import uvicorn

    settings = _setup(ctx.obj.get('debug'))
    uvicorn.run(
        "safha_ingest.api.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
    )


if __name__ == '__main__':
    cli()
