"""
Bytecode harvest CLI commands.

Usage:
    ./harvester.py run [URL...] [--status active|upcoming]   # Clone, compile, extract
    ./harvester.py discover [--status active|upcoming]       # List contest repositories
    ./harvester.py walk <url>                                # List eligible sources only
    ./harvester.py check                                     # Check forge/git availability
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

sys.path.insert(0, str(Path(__file__).parent.parent))

from extensions.harvest import (
    ContentLister, ContestDiscovery, ForgeRunner, GitCloner, HarvestError,
    HarvestPipeline, HarvestReport, HarvestSettings, RepositoryTarget, TreeWalker,
)
from extensions.harvest.discovery import STATUSES


console = Console()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def load_settings(config_path: str | None, **overrides) -> HarvestSettings:
    """Load settings, apply command line overrides, exit on bad config."""
    try:
        settings = HarvestSettings.load(Path(config_path) if config_path else None)
        settings = settings.merged(overrides, source="command line")
        settings.validate()
    except (ValueError, OSError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        raise SystemExit(1)
    return settings


def make_lister(settings: HarvestSettings) -> ContentLister:
    return ContentLister(
        api_base=settings.api_base,
        user_agent=settings.user_agent,
        token=settings.github_token,
        timeout=settings.request_timeout,
    )


def make_discovery(settings: HarvestSettings) -> ContestDiscovery:
    return ContestDiscovery(
        contests_url=settings.contests_url,
        user_agent=settings.user_agent,
        timeout=settings.request_timeout,
    )


def print_report(report: HarvestReport) -> None:
    """Render a harvest report."""
    if report.results:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Repository", width=30)
        table.add_column("Contract", width=35)
        table.add_column("Pragma", width=10)
        table.add_column("Bytecode", width=12)

        for result in report.results:
            for source in result.sources:
                table.add_row(
                    escape(result.repository[:30]),
                    escape(source.file_name[:35]),
                    source.pragma or "-",
                    f"{len(source.bytecode.strip())} chars",
                )
        console.print(table)

    if report.skipped:
        console.print(f"\n[bold yellow]Skipped ({len(report.skipped)})[/bold yellow]")
        skipped_table = Table(show_header=True, header_style="bold")
        skipped_table.add_column("Repository", width=45)
        skipped_table.add_column("Stage", width=16)
        skipped_table.add_column("Reason")
        for skipped in report.skipped:
            skipped_table.add_row(escape(skipped.url), skipped.stage, escape(skipped.reason[:80]))
        console.print(skipped_table)


@click.group("harvest")
def harvest():
    """Harvest contract bytecode from audit-contest repositories."""
    pass


@harvest.command("run")
@click.argument("repo_urls", nargs=-1)
@click.option("--status", "-s", "statuses", multiple=True, type=click.Choice(STATUSES), help="Contest status to discover")
@click.option("--workers", "-w", type=int, default=None, help="Repositories processed concurrently")
@click.option("--workspace", type=click.Path(file_okay=False), default=None, help="Staging directory for clones")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write JSON report to file")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None, help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def run(
    repo_urls: tuple[str, ...],
    statuses: tuple[str, ...],
    workers: int | None,
    workspace: str | None,
    output: str | None,
    config_path: str | None,
    verbose: bool,
):
    """Clone, compile and extract bytecode from contest repositories.

    Without URLs, active and upcoming Code4rena contests are discovered first.
    """
    configure_logging(verbose)
    settings = load_settings(config_path, workers=workers, workspace_root=workspace)

    async def harvest_all() -> HarvestReport:
        urls = list(repo_urls)
        if not urls:
            console.print("[dim]Discovering contests...[/dim]")
            async with make_discovery(settings) as discovery:
                urls = await discovery.discover_all(statuses or STATUSES)

        console.print(f"\n[bold]Contests ({len(urls)})[/bold]")
        for url in urls:
            console.print(f"  {escape(url)}")

        async with make_lister(settings) as lister:
            pipeline = HarvestPipeline.from_settings(settings, lister)
            return await pipeline.run(urls)

    try:
        report = asyncio.run(harvest_all())
    except (HarvestError, OSError) as e:
        console.print(f"[red]An error occurred: {escape(str(e))}[/red]")
        raise SystemExit(1)

    console.print()
    print_report(report)

    if output:
        try:
            path = report.save(Path(output))
        except OSError as e:
            console.print(f"[red]Could not write report: {escape(str(e))}[/red]")
            raise SystemExit(1)
        console.print(f"\n[dim]Report saved to: {path}[/dim]")

    console.print(f"\n[bold green]Done: {len(report.results)}[/bold green]")


@harvest.command("discover")
@click.option("--status", "-s", "statuses", multiple=True, type=click.Choice(STATUSES), help="Contest status to discover")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None, help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def discover(statuses: tuple[str, ...], config_path: str | None, verbose: bool):
    """List repositories of active and upcoming contests."""
    configure_logging(verbose)
    settings = load_settings(config_path)

    async def discover_repos() -> dict[str, list[str]]:
        found = {}
        async with make_discovery(settings) as discovery:
            for status in statuses or STATUSES:
                found[status] = await discovery.discover(status)
        return found

    found = asyncio.run(discover_repos())

    for status, repos in found.items():
        console.print(f"\n[bold cyan]{status.upper()}[/bold cyan] ({len(repos)} found)")
        for repo in repos:
            console.print(f"  {escape(repo)}")


@harvest.command("walk")
@click.argument("repo_url")
@click.option("--max-depth", type=int, default=None, help="Deepest directory level to expand")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None, help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def walk(repo_url: str, max_depth: int | None, config_path: str | None, verbose: bool):
    """List the eligible contract sources of one repository without cloning it."""
    configure_logging(verbose)
    settings = load_settings(config_path, max_depth=max_depth)

    async def walk_repo():
        target = RepositoryTarget.from_url(repo_url)
        async with make_lister(settings) as lister:
            root = await lister.list_contents(target.owner, target.name)
            walker = TreeWalker(lister, max_depth=settings.max_depth)
            return target, await walker.walk(root, target.owner, target.name)

    try:
        target, entries = asyncio.run(walk_repo())
    except HarvestError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1)

    if not entries:
        console.print(f"[yellow]No eligible sources in {escape(repo_url)}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", title=str(target))
    table.add_column("Contract", width=35)
    table.add_column("Path")
    for entry in entries:
        table.add_row(escape(entry.name), escape(entry.path or "-"))
    console.print(table)
    console.print(f"\n[dim]Total: {len(entries)} sources[/dim]")


@harvest.command("check")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None, help="YAML settings file")
def check(config_path: str | None):
    """Check that forge and git are installed."""
    settings = load_settings(config_path)
    tools = {
        "forge": ForgeRunner(forge_bin=settings.forge_bin).is_available(),
        "git": GitCloner(git_bin=settings.git_bin).is_available(),
    }

    tool_table = Table(show_header=True, header_style="bold")
    tool_table.add_column("Tool")
    tool_table.add_column("Status")
    tool_table.add_column("Version/Error")

    for tool_name, (available, info) in tools.items():
        status = "[green]Available[/green]" if available else "[red]Not found[/red]"
        tool_table.add_row(tool_name, status, info)

    console.print(tool_table)

    if not all(available for available, _ in tools.values()):
        console.print("[red]Missing tools. Install with:[/red]")
        console.print("  forge: curl -L https://foundry.paradigm.xyz | bash && foundryup")
        console.print("  git: your system package manager")
        raise SystemExit(1)
