"""
Source CLI Commands
===================

CLI commands for inspecting configured retail sources and adapters.
"""

from __future__ import annotations

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from kbeauty_pipeline.ingestion.adapters import ADAPTER_REGISTRY, get_adapter_info, list_adapters
from kbeauty_pipeline.ingestion.registry import get_default_registry

console = Console()
sources_app = typer.Typer(help="Source management commands")


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including disabled"),
) -> None:
    """
    List configured retail sources.

    Examples:
        kbeauty-pipeline sources list
        kbeauty-pipeline sources list --all
    """
    registry = get_default_registry()
    sources = registry.list_sources() if all_sources else registry.list_enabled_sources()

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/pipeline.yaml")
        return

    table = Table(title="Retail Sources")
    table.add_column("Name", style="bold")
    table.add_column("Adapter")
    table.add_column("Status")
    table.add_column("Reliability")
    table.add_column("Delay")

    for source in sources:
        status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"
        delay = source.delay_seconds if source.delay_seconds is not None else registry.fetch.delay_seconds
        table.add_row(source.name, source.adapter, status, source.reliability, f"{delay}s")

    console.print(table)


@sources_app.command("show")
def show_source(
    name: str = typer.Argument(..., help="Source name"),
) -> None:
    """
    Show detailed information about a source.

    Examples:
        kbeauty-pipeline sources show olive_young
    """
    registry = get_default_registry()
    source = registry.get_source(name)

    if source is None:
        rprint(f"[red]Error:[/red] Source '{name}' not found")
        raise typer.Exit(1)

    status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"

    rprint(f"\n[bold]Source: {source.name}[/bold]")
    rprint(f"  Status: {status}")
    rprint(f"  Adapter: {source.adapter}")
    rprint(f"  Reliability: {source.reliability}")
    if source.description:
        rprint(f"  Description: {source.description}")

    adapter_class = ADAPTER_REGISTRY.get(source.adapter)
    if adapter_class is not None and adapter_class.supports_catalog:
        rprint("\n[bold]Catalog Categories:[/bold]")
        for category in adapter_class.categories():
            rprint(f"  • {category.category_id}  {category.name} -> {category.catalog_category}")

    adapter_info = get_adapter_info(source.adapter)
    if adapter_info:
        rprint("\n[bold]Adapter Info:[/bold]")
        rprint(f"  Name: {adapter_info['name']}")
        rprint(f"  Version: {adapter_info['version']}")
        rprint(f"  Class: {adapter_info['class']}")


@sources_app.command("adapters")
def show_adapters() -> None:
    """List available adapter types."""
    table = Table(title="Available Adapters")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Reliability")
    table.add_column("Search")
    table.add_column("Catalog")

    for name in list_adapters():
        info = get_adapter_info(name)
        if info:
            table.add_row(
                name,
                info["version"],
                info["reliability"],
                "yes" if info["search"] else "-",
                "yes" if info["catalog"] else "-",
            )

    console.print(table)
