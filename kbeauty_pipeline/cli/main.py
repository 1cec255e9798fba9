"""K-Beauty catalog pipeline CLI using Typer."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from kbeauty_pipeline.cli.sources import sources_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()
app = typer.Typer(
    name="kbeauty-pipeline",
    help="K-Beauty catalog pipeline - scrape, extract, link ingredients and track prices",
    add_completion=False,
)
app.add_typer(sources_app, name="sources")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _check_ai_config() -> None:
    """Check and display AI configuration status."""
    anthropic_key = os.environ.get("ANTHROPIC_API_KEY", "")
    openai_key = os.environ.get("OPENAI_API_KEY", "")
    provider = os.environ.get("AI_PROVIDER", "anthropic")

    if provider == "openai" and openai_key:
        typer.echo("  AI Provider: OpenAI (configured)")
    elif anthropic_key:
        typer.echo("  AI Provider: Anthropic (configured)")
    else:
        typer.echo("  AI Provider: Not configured (process and link need an API key)")
        typer.echo("  Tip: Set ANTHROPIC_API_KEY in .env file")


def _fail(message: str) -> None:
    rprint(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _print_counts(title: str, data: dict) -> None:
    table = Table(title=title)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            continue
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


def _print_errors(errors: list[str]) -> None:
    if errors:
        rprint(f"\n[yellow]{len(errors)} errors[/yellow] (most recent):")
        for error in errors[-5:]:
            rprint(f"  • {error}")


@app.command()
def init_db() -> None:
    """Initialize the database (create tables and seed retailers)."""
    from kbeauty_pipeline.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def migrate() -> None:
    """Apply Alembic migrations to the latest revision."""
    from kbeauty_pipeline.db.engine import run_migrations

    typer.echo("Running migrations...")
    try:
        run_migrations()
    except FileNotFoundError as e:
        _fail(str(e))
    typer.echo("Migrations applied successfully!")


@app.command()
def version() -> None:
    """Show the pipeline version."""
    typer.echo("K-Beauty Pipeline v0.1.0")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from kbeauty_pipeline.db.engine import get_database_url
    from kbeauty_pipeline.ingestion.registry import get_default_registry

    typer.echo("K-Beauty Pipeline Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    _check_ai_config()
    typer.echo(f"  Database: {get_database_url()}")
    typer.echo(f"  Sources configured: {len(get_default_registry().list_sources())}")


@app.command()
def scrape(
    source: str = typer.Option("olive_young", "--source", "-s", help="Catalog source to scrape"),
    mode: str = typer.Option("full", "--mode", "-m", help="full or incremental"),
    category: Optional[list[str]] = typer.Option(None, "--category", "-c", help="Category id (repeatable)"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Pages per category"),
    skip_details: bool = typer.Option(False, "--skip-details", help="Stage listing data only"),
) -> None:
    """
    Scrape a catalog source into the staging store.

    Examples:
        kbeauty-pipeline scrape --mode incremental
        kbeauty-pipeline scrape -c 1000000011 --skip-details
    """
    from kbeauty_pipeline.pipeline.jobs import run_scrape

    if mode not in ("full", "incremental"):
        _fail("--mode must be 'full' or 'incremental'")

    rprint(f"\n[bold]Scraping {source}[/bold] ({mode})")
    try:
        result = asyncio.run(run_scrape(source, mode, category or None, max_pages, skip_details))
    except ValueError as e:
        _fail(str(e))

    _print_counts("Scrape Results", result)
    _print_errors(result.get("errors", []))


@app.command()
def enrich(
    source: str = typer.Option("olive_young", "--source", "-s", help="Catalog source"),
    batch: int = typer.Option(50, "--batch", "-b", help="Rows to enrich"),
    concurrency: int = typer.Option(4, "--concurrency", help="Detail pages fetched at once"),
) -> None:
    """Fetch detail pages for staged rows that lack ingredient text."""
    from kbeauty_pipeline.pipeline.jobs import run_enrich

    try:
        result = asyncio.run(run_enrich(source, batch, concurrency))
    except ValueError as e:
        _fail(str(e))
    _print_counts("Enrichment Results", result)


@app.command()
def process(
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Rows to claim"),
) -> None:
    """Extract one batch of staged records into catalog products."""
    from kbeauty_pipeline.pipeline.jobs import run_process

    try:
        result = asyncio.run(run_process(batch))
    except ValueError as e:
        _fail(str(e))
    _print_counts("Batch Results", result)
    _print_counts("Cost", result["cost"])


@app.command()
def reprocess(
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Rows to claim"),
) -> None:
    """Reset failed staging rows to pending and process one batch."""
    from kbeauty_pipeline.pipeline.jobs import run_process

    try:
        result = asyncio.run(run_process(batch, reprocess=True))
    except ValueError as e:
        _fail(str(e))
    _print_counts("Reprocess Results", result)
    _print_counts("Cost", result["cost"])


@app.command()
def link(
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Products to link"),
    no_enrich: bool = typer.Option(False, "--no-enrich", help="Create new ingredients without AI metadata"),
) -> None:
    """Link unlinked products to their ingredients."""
    from kbeauty_pipeline.pipeline.jobs import run_link

    try:
        result = asyncio.run(run_link(batch, enrich=not no_enrich))
    except ValueError as e:
        _fail(str(e))
    _print_counts("Link Results", result)
    _print_errors(result.get("errors", []))


@app.command()
def prices(
    retailer: Optional[str] = typer.Option(None, "--retailer", "-r", help="Retailer (default: all)"),
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Products per retailer"),
    brands: Optional[str] = typer.Option(None, "--brands", help="Comma-separated brand filter"),
    stale: Optional[int] = typer.Option(None, "--stale", help="Hours before a price is stale"),
    stats: bool = typer.Option(False, "--stats", help="Show price coverage instead of scraping"),
) -> None:
    """
    Refresh retailer prices.

    Examples:
        kbeauty-pipeline prices --retailer yesstyle --batch 50
        kbeauty-pipeline prices --brands "COSRX,Anua"
        kbeauty-pipeline prices --stats
    """
    from kbeauty_pipeline.pipeline.jobs import run_prices
    from kbeauty_pipeline.services.prices.pipeline import PRICE_RETAILERS

    if stats:
        from kbeauty_pipeline.db.engine import get_session
        from kbeauty_pipeline.db.repositories import PriceRepository

        with get_session() as session:
            repo = PriceRepository(session)
            coverage = repo.count_by_retailer()
            total = repo.count()
        table = Table(title=f"Price Coverage ({total} records)")
        table.add_column("Retailer", style="bold")
        table.add_column("Prices", justify="right")
        for name, count in sorted(coverage.items(), key=lambda item: item[1], reverse=True):
            table.add_row(name, str(count))
        console.print(table)
        return

    valid = [r.value for r in PRICE_RETAILERS]
    if retailer and retailer not in valid:
        _fail(f"Unsupported retailer '{retailer}'. Choose from: {', '.join(valid)}")

    brand_list = [b.strip() for b in brands.split(",") if b.strip()] if brands else None
    results = asyncio.run(run_prices(retailer, batch, brand_list, stale_hours=stale))

    table = Table(title="Price Refresh")
    for column in ("Retailer", "Searched", "Found", "Matched", "New", "Updated", "Errors"):
        table.add_column(column, justify="right" if column != "Retailer" else "left")
    for r in results:
        table.add_row(
            r["retailer"],
            str(r["products_searched"]),
            str(r["prices_found"]),
            str(r["prices_matched"]),
            str(r["prices_new"]),
            str(r["prices_updated"]),
            str(len(r["errors"])),
        )
    console.print(table)


@app.command()
def stats() -> None:
    """Show the pipeline dashboard."""
    from kbeauty_pipeline.db.engine import get_session
    from kbeauty_pipeline.services.quality import build_dashboard

    with get_session() as session:
        dashboard = build_dashboard(session, recent_runs=5)

    _print_counts("Catalog", dashboard["database"])
    _print_counts("Staging", dashboard["staging"])

    if dashboard["category_distribution"]:
        table = Table(title="Categories")
        table.add_column("Category", style="bold")
        table.add_column("Products", justify="right")
        for row in dashboard["category_distribution"]:
            table.add_row(row["category"], str(row["count"]))
        console.print(table)


@app.command()
def quality(
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
) -> None:
    """Run the data quality check and store the report."""
    from kbeauty_pipeline.pipeline.jobs import run_quality

    result = asyncio.run(run_quality())
    if as_json:
        typer.echo(json.dumps(result, indent=2))
        return

    score = result["health_score"]
    color = "green" if score >= 80 else "yellow" if score >= 50 else "red"
    rprint(f"\n[bold]Health score:[/bold] [{color}]{score}[/{color}]")
    _print_counts("Issues", result["report"]["issues"])
    _print_counts("Coverage (%)", result["report"]["coverage"])


@app.command()
def runs(
    limit: int = typer.Option(20, "--limit", "-n", help="Runs to show"),
    run_type: Optional[str] = typer.Option(None, "--type", "-t", help="Filter by run type"),
) -> None:
    """List recent pipeline runs."""
    from kbeauty_pipeline.core.enums import PipelineRunType
    from kbeauty_pipeline.db.engine import get_session
    from kbeauty_pipeline.pipeline.runs import RunTracker

    try:
        selected = PipelineRunType(run_type) if run_type else None
    except ValueError:
        _fail(f"Unknown run type '{run_type}'")

    with get_session() as session:
        recent = RunTracker(session).list_recent(limit, selected)

    if not recent:
        rprint("[yellow]No pipeline runs recorded[/yellow]")
        return

    table = Table(title="Pipeline Runs")
    for column in ("Started", "Type", "Source", "Status", "Scraped", "Processed", "Failed", "Cost"):
        table.add_column(column)
    for run in recent:
        status_color = {"completed": "green", "failed": "red"}.get(run.status.value, "yellow")
        table.add_row(
            run.started_at.strftime("%Y-%m-%d %H:%M"),
            run.run_type.value,
            run.source,
            f"[{status_color}]{run.status.value}[/{status_color}]",
            str(run.products_scraped),
            str(run.products_processed),
            str(run.products_failed),
            f"${run.estimated_cost_usd:.4f}",
        )
    console.print(table)


@app.command()
def worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the pipeline worker.

    The worker processes queued pipeline jobs from Redis.
    """
    from arq import run_worker

    from kbeauty_pipeline.pipeline.jobs import WorkerSettings

    rprint("[bold]Starting pipeline worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    try:
        run_worker(WorkerSettings, burst=burst)
    except OSError as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running and REDIS_HOST/REDIS_PORT are set")
        raise typer.Exit(1)


@app.command()
def enqueue(
    task: str = typer.Argument(..., help="scrape, enrich, process, link, prices or quality"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Source (scrape/enrich)"),
    retailer: Optional[str] = typer.Option(None, "--retailer", "-r", help="Retailer (prices)"),
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Batch size"),
) -> None:
    """Enqueue a pipeline job for the worker."""
    from kbeauty_pipeline.pipeline.jobs import TASKS, enqueue as enqueue_job

    if task not in TASKS:
        _fail(f"Unknown task '{task}'. Available: {', '.join(TASKS)}")

    args: list = []
    kwargs: dict = {}
    if task in ("scrape", "enrich"):
        args.append(source or "olive_young")
        if batch and task == "enrich":
            kwargs["batch_size"] = batch
    elif task == "prices":
        args.append(retailer)
        if batch:
            kwargs["batch_size"] = batch
    elif task in ("process", "link") and batch:
        args.append(batch)

    try:
        job_id = asyncio.run(enqueue_job(task, *args, **kwargs))
    except (OSError, ValueError) as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)

    rprint("\n[green]Job enqueued successfully![/green]")
    rprint(f"Job ID: [bold]{job_id}[/bold]")


if __name__ == "__main__":
    app()
