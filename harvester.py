#!/usr/bin/env python3
"""Contest Harvester - bytecode extraction for audit-contest repositories.

Discovers Code4rena contest repositories, clones and compiles them with
Foundry, and extracts the bytecode of every production contract.
"""

import sys
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import click
import typer
from rich.console import Console

# Setup path for local imports
_BASE_DIR_STR = str(Path(__file__).resolve().parent)
if sys.path[0] != _BASE_DIR_STR:
    try:
        sys.path.remove(_BASE_DIR_STR)
    except ValueError:
        pass
    sys.path.insert(0, _BASE_DIR_STR)

__version__ = "0.1.0"

console = Console()

app = typer.Typer(
    name="harvester",
    help="Harvest contract bytecode from audit-contest repositories",
    add_completion=False,
)


def _invoke_click(command: click.Command, params: dict) -> None:
    """Invoke a click command with already-parsed parameters."""
    with click.Context(command, info_name=command.name) as ctx:
        ctx.invoke(command, **params)


def _check_statuses(status: list[str] | None) -> tuple[str, ...]:
    from extensions.harvest.discovery import STATUSES
    for value in status or ():
        if value not in STATUSES:
            raise typer.BadParameter(f"{value!r} is not one of {list(STATUSES)}", param_hint="--status")
    return tuple(status) if status else ()


# ─────────────────────────────────────────────────────────────────────────────
# Harvest Commands
# ─────────────────────────────────────────────────────────────────────────────

@app.command("run")
def harvest_run(
    repo_urls: list[str] = typer.Argument(None, help="Repository URLs (discovered when omitted)"),
    status: list[str] = typer.Option(None, "--status", "-s", help="Contest status to discover (active, upcoming)"),
    workers: int = typer.Option(None, "--workers", "-w", help="Repositories processed concurrently"),
    workspace: str = typer.Option(None, "--workspace", help="Staging directory for clones"),
    output: str = typer.Option(None, "--output", "-o", help="Write JSON report to file"),
    config: str = typer.Option(None, "--config", "-c", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Clone, compile and extract bytecode from contest repositories."""
    from commands.harvest import run
    _invoke_click(run, {
        'repo_urls': tuple(repo_urls) if repo_urls else (),
        'statuses': _check_statuses(status),
        'workers': workers,
        'workspace': workspace,
        'output': output,
        'config_path': config,
        'verbose': verbose,
    })


@app.command("discover")
def harvest_discover(
    status: list[str] = typer.Option(None, "--status", "-s", help="Contest status to discover (active, upcoming)"),
    config: str = typer.Option(None, "--config", "-c", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """List repositories of active and upcoming contests."""
    from commands.harvest import discover
    _invoke_click(discover, {
        'statuses': _check_statuses(status),
        'config_path': config,
        'verbose': verbose,
    })


@app.command("walk")
def harvest_walk(
    repo_url: str = typer.Argument(..., help="Repository URL"),
    max_depth: int = typer.Option(None, "--max-depth", help="Deepest directory level to expand"),
    config: str = typer.Option(None, "--config", "-c", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """List eligible contract sources without cloning."""
    from commands.harvest import walk
    _invoke_click(walk, {
        'repo_url': repo_url,
        'max_depth': max_depth,
        'config_path': config,
        'verbose': verbose,
    })


@app.command("check")
def harvest_check(
    config: str = typer.Option(None, "--config", "-c", help="YAML settings file"),
):
    """Check that forge and git are installed."""
    from commands.harvest import check
    _invoke_click(check, {'config_path': config})


@app.command()
def version():
    """Show harvester version."""
    console.print(f"[bold]Contest Harvester[/bold] v{__version__}")
    console.print("[dim]Bytecode extraction for audit-contest repositories[/dim]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
