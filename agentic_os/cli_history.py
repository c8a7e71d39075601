"""History export browsing: show, search, tag, and delete entries."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table

from . import config
from .errors import HistoryFileError
from .history import HistoryLedger, format_relative_time
from .models import HistoryEntry

console = Console()

history_app = typer.Typer(
    help="📜 Semantic timeline — browse exported fan-out history.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

FILE_OPTION_HELP = "History export file (default: ~/.agentic_os/history.json)."


def load_ledger(path: Optional[Path]) -> tuple[HistoryLedger, Path]:
    resolved = path or config.HISTORY_FILE
    ledger = HistoryLedger()
    if resolved.exists():
        try:
            ledger.import_json(resolved)
        except HistoryFileError as exc:
            console.print(f"[red]❌ {exc}[/red]")
            raise typer.Exit(code=1)
    return ledger, resolved


def render_history_table(entries: Sequence[HistoryEntry], title: str = "Semantic Timeline") -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("#", style="dim", width=4)
    table.add_column("ID", style="dim", width=10)
    table.add_column("When", style="cyan", width=12)
    table.add_column("Prompt", min_width=30)
    table.add_column("Providers", style="green")
    table.add_column("Tags", style="magenta")

    for i, entry in enumerate(entries, 1):
        table.add_row(
            str(i),
            entry.id[:8],
            format_relative_time(entry.created_at),
            entry.prompt,
            ", ".join(p.value for p in entry.providers),
            ", ".join(entry.tags),
        )
    return table


def _resolve_entry(ledger: HistoryLedger, prefix: str) -> HistoryEntry:
    matches = [e for e in ledger.entries() if e.id.startswith(prefix)]
    if len(matches) != 1:
        console.print(f"[red]No unique history entry matches '{prefix}'.[/red]")
        raise typer.Exit(code=1)
    return matches[0]


@history_app.command("show")
def show_history(
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of entries to show."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help=FILE_OPTION_HELP),
):
    """📜 Show recent fan-out batches, newest first.

    Example:
      aos history show
      aos history show --limit 20
    """
    ledger, _ = load_ledger(file)
    if not len(ledger):
        console.print("[yellow]No history yet.[/yellow]")
        console.print("[dim]History is recorded with 'aos ask --save'.[/dim]")
        return

    entries = ledger.entries()[:limit]
    console.print(render_history_table(entries))
    console.print(f"\n[dim]Showing {len(entries)} of {len(ledger)} entries[/dim]")


@history_app.command("search")
def search_history(
    query: str = typer.Argument("", help="Text to find in prompts, tags, or provider names."),
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Only entries carrying this tag."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help=FILE_OPTION_HELP),
):
    """🔍 Search history by prompt, tag, or provider.

    Example:
      aos history search "sorting"
      aos history search --tag review
    """
    ledger, _ = load_ledger(file)
    results = ledger.search(query, tag)
    if not results:
        console.print("[yellow]No entries found.[/yellow]")
        return
    console.print(render_history_table(results, title=f"Results for '{query}'" if query else "Results"))
    tags = ledger.all_tags()
    if tags:
        console.print(f"[dim]Tags: {', '.join(tags)}[/dim]")


@history_app.command("tag")
def tag_entry(
    entry_id: str = typer.Argument(..., help="Entry id or unique prefix."),
    tags: List[str] = typer.Argument(..., help="Tags to set (replaces existing tags)."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help=FILE_OPTION_HELP),
):
    """🏷️  Replace the tags of a history entry."""
    ledger, path = load_ledger(file)
    entry = _resolve_entry(ledger, entry_id)
    updated = ledger.set_tags(entry.id, tags)
    ledger.export_json(path)
    console.print(f"[green]✓ Tagged {entry.id[:8]}:[/green] {', '.join(updated.tags)}")


@history_app.command("delete")
def delete_entry(
    entry_id: str = typer.Argument(..., help="Entry id or unique prefix."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help=FILE_OPTION_HELP),
):
    """🗑️  Delete one history entry."""
    ledger, path = load_ledger(file)
    entry = _resolve_entry(ledger, entry_id)
    ledger.remove(entry.id)
    ledger.export_json(path)
    console.print(f"[green]✓ Deleted {entry.id[:8]}.[/green]")


@history_app.command("clear")
def clear_history(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help=FILE_OPTION_HELP),
):
    """🗑️  Clear all history."""
    path = file or config.HISTORY_FILE
    if not path.exists():
        console.print("[yellow]No history to clear.[/yellow]")
        return

    if typer.confirm("Clear all history?", default=False):
        path.unlink(missing_ok=True)
        console.print("[green]✓ History cleared.[/green]")
    else:
        console.print("[dim]Cancelled.[/dim]")
