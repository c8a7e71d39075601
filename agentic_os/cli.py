"""Typer-based CLI for Agentic OS multi-model orchestration."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from . import __version__, config, graph_export
from .cli_history import history_app
from .cli_keys import config_app, keys_app
from .cli_shell import render_nodes_table, run_shell
from .errors import HistoryFileError, ValidationError
from .models import NodeStatus, Provider
from .orchestrator import Orchestrator

console = Console()

app = typer.Typer(
    help="🧠 Agentic OS — send one prompt to many AI models and compare the answers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(keys_app, name="keys")
app.add_typer(config_app, name="config")
app.add_typer(history_app, name="history")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"Agentic OS v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log dispatch activity."),
):
    """Agentic OS: multi-model orchestration from the terminal."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _resolve_providers(names: Optional[List[str]], orchestrator: Orchestrator, mock: bool) -> List[Provider]:
    try:
        if names:
            return list(Provider.parse_many(names))
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from None
    # Canned responses need no keys
    if mock:
        return list(Provider)
    return orchestrator.configured_providers()


@app.command("ask")
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send."),
    providers: Optional[List[str]] = typer.Option(
        None, "--provider", "-p", help="Provider to query; repeat for several (default: all with a stored key)."
    ),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag for the history entry; repeatable."),
    mock: bool = typer.Option(False, "--mock", help="Use canned offline responses."),
    save: bool = typer.Option(False, "--save", help="Append the batch to the history file."),
    export: Optional[Path] = typer.Option(None, "--export", "-o", help="Write the canvas to .json, .dot, or .html."),
):
    """Fan a prompt out to several providers and show every answer.

    Examples:
        aos ask "Explain CRDTs" -p openai -p gemini
        aos ask "ping" --mock --save --tag smoke
    """
    orchestrator = Orchestrator.from_config(mock=mock)
    selected = _resolve_providers(providers, orchestrator, mock)

    try:
        entry = asyncio.run(orchestrator.fan_out(prompt, selected, tags=tags or []))
    except ValidationError as exc:
        console.print(f"[red]❌ {exc}[/red]")
        raise typer.Exit(code=1)

    console.print(render_nodes_table(orchestrator.nodes))
    n = len(entry.providers)
    console.print(f"[dim]Sent to {n} model{'s' if n != 1 else ''}[/dim]")

    if save:
        try:
            orchestrator.save_history(config.HISTORY_FILE)
        except HistoryFileError as exc:
            console.print(f"[red]❌ {exc}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[dim]History saved to {config.HISTORY_FILE}[/dim]")

    if export:
        data = graph_export.build_graph_data(orchestrator.nodes, orchestrator.links)
        graph_export.export_to(data, export)
        console.print(f"[dim]Canvas exported to {export}[/dim]")

    if all(node.status is NodeStatus.FAILED for node in orchestrator.nodes):
        raise typer.Exit(code=1)


@app.command("shell")
def shell(
    providers: Optional[List[str]] = typer.Option(
        None, "--provider", "-p", help="Initially selected providers (default: all with a stored key)."
    ),
    mock: bool = typer.Option(False, "--mock", help="Use canned offline responses."),
):
    """Start an interactive orchestration session."""
    orchestrator = Orchestrator.from_config(mock=mock)
    selected = _resolve_providers(providers, orchestrator, mock)
    asyncio.run(run_shell(orchestrator, selected, mock=mock))


if __name__ == "__main__":
    app()
