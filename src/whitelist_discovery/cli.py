"""Command-line interface for whitelist-discovery."""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from whitelist_discovery import __version__
from whitelist_discovery.config import AppConfig, ScrapeConfig
from whitelist_discovery.engine import DiscoveryEngine
from whitelist_discovery.models import ScrapeOutcome
from whitelist_discovery.request_filter import RequestFilter
from whitelist_discovery.scrape import ScraperRegistry, ScrapeResult
from whitelist_discovery.store import WhitelistStore

app = typer.Typer(
    name="whitelist-discovery",
    help="Discover which path prefixes exist on remote proxy repositories.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()

_OUTCOME_STYLES = {
    ScrapeOutcome.SCRAPED: "green",
    ScrapeOutcome.OPTED_OUT: "yellow",
    ScrapeOutcome.EXHAUSTED: "yellow",
    ScrapeOutcome.CRAWL_FAILED: "red",
    ScrapeOutcome.ROOT_UNREACHABLE: "red",
    ScrapeOutcome.TIMED_OUT: "red",
}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def version_callback(value: bool):
    if value:
        console.print(f"whitelist-discovery version {__version__}")
        raise typer.Exit()


def load_config(path: Path) -> AppConfig:
    try:
        return AppConfig.from_toml(path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid config {path}: {e}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Whitelist discovery for remote proxy repositories."""
    pass


@app.command()
def discover(
    url: str = typer.Argument(..., help="Root URL of the remote repository"),
    max_depth: int = typer.Option(2, "--max-depth", help="How many directory levels to crawl"),
    max_requests: int = typer.Option(100, "--max-requests", help="Request budget for the crawl"),
    timeout: float = typer.Option(300.0, "--timeout", help="Overall time budget in seconds"),
    delay: float = typer.Option(0.1, "--delay", help="Seconds between requests to the remote"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """
    Run the scraper chain once against a remote and print what it found.

    Examples:

        whitelist-discovery discover https://repo.example.com/maven2/

        whitelist-discovery discover https://repo.example.com/maven2/ --max-depth 1 -v
    """
    setup_logging(verbose)
    try:
        config = AppConfig(
            scrape=ScrapeConfig(
                max_depth=max_depth,
                max_requests=max_requests,
                run_timeout_seconds=timeout,
                delay_seconds=delay,
            ),
            verbose=verbose,
        )
    except ValueError as e:
        console.print(f"[red]Invalid option: {e}[/red]")
        raise typer.Exit(1)

    async def _run() -> ScrapeResult:
        async with DiscoveryEngine(config) as engine:
            return await engine.scrape_url(url)

    try:
        result = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Discovery cancelled.[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        raise typer.Exit(1)

    _print_result(result, verbose)
    if result.outcome in (
        ScrapeOutcome.CRAWL_FAILED,
        ScrapeOutcome.ROOT_UNREACHABLE,
        ScrapeOutcome.TIMED_OUT,
    ):
        raise typer.Exit(2)


def _print_result(result: ScrapeResult, verbose: bool) -> None:
    style = _OUTCOME_STYLES[result.outcome]
    console.print(f"[{style}]Outcome: {result.outcome.value}[/{style}]")
    if result.scraper_id:
        console.print(f"Scraper: {result.scraper_id}")
    if result.message:
        console.print(f"Message: {result.message}")

    if result.prefixes:
        table = Table(title=f"Discovered Paths ({len(result.prefixes)})")
        table.add_column("Path", style="cyan")
        table.add_column("Depth", justify="right")
        for entry in sorted(result.prefixes, key=lambda e: (e.depth, e.path)):
            table.add_row(entry.path, str(entry.depth))
        console.print(table)

    if verbose and result.remarks:
        console.print("[dim]Remarks:[/dim]")
        for remark in result.remarks:
            console.print(f"  [dim]{remark}[/dim]")


@app.command("list-scrapers")
def list_scrapers():
    """List registered scrapers in the order they are tried."""
    table = Table(title="Registered Scrapers")
    table.add_column("ID", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Targeted Server")

    for profile in ScraperRegistry.list_profiles():
        table.add_row(profile.id, str(profile.priority), profile.display_name)

    console.print(table)


@app.command()
def serve(
    config_path: Path = typer.Option(..., "--config", "-c", help="TOML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Keep the whitelists of every configured repository up to date."""
    config = load_config(config_path)
    setup_logging(verbose or config.verbose)
    if not config.repositories:
        console.print("[yellow]No repositories configured.[/yellow]")
        raise typer.Exit(0)

    async def _serve() -> None:
        async with DiscoveryEngine(config) as engine:
            await engine.scheduler.run_forever()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
        raise typer.Exit(130)


@app.command()
def status(
    config_path: Path = typer.Option(..., "--config", "-c", help="TOML configuration file"),
):
    """Show the persisted discovery state of every repository."""
    config = load_config(config_path)
    if config.store.path is None:
        console.print("[red]The store has no path configured; nothing is persisted.[/red]")
        raise typer.Exit(1)

    store = WhitelistStore(config.store.path)
    asyncio.run(store.load())

    table = Table(title="Whitelist Status")
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Prefixes", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Last Attempt")
    table.add_column("Last Error")

    for record in sorted(store, key=lambda r: r.repository_id):
        table.add_row(
            record.repository_id,
            record.status.value,
            str(len(record.top_level_segments)),
            str(record.consecutive_failures),
            record.last_attempt_at.isoformat(timespec="seconds") if record.last_attempt_at else "-",
            record.last_error or "",
        )

    console.print(table)


@app.command()
def check(
    repository: str = typer.Argument(..., help="Repository id"),
    path: str = typer.Argument(..., help="Request path, e.g. /org/example/1.0/example-1.0.jar"),
    config_path: Path = typer.Option(..., "--config", "-c", help="TOML configuration file"),
):
    """Tell whether a request path would be forwarded to the remote."""
    config = load_config(config_path)
    store = WhitelistStore(config.store.path)
    asyncio.run(store.load())

    if RequestFilter(store).may_exist(repository, path):
        console.print(f"[green]{path} may exist on {repository}[/green]")
    else:
        console.print(f"[yellow]{path} is not on the {repository} whitelist[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
