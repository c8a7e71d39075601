"""Interactive orchestration shell: fan out prompts, inspect nodes, link results."""

from __future__ import annotations

import asyncio
import shlex
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from . import config, events, graph_export
from .cli_history import render_history_table
from .errors import HistoryFileError, ValidationError
from .models import CorrectionKind, CorrectionLink, NodeStatus, Provider, ResponseNode
from .orchestrator import Orchestrator

console = Console()

STATUS_STYLES = {
    NodeStatus.PENDING: "yellow",
    NodeStatus.SUCCEEDED: "green",
    NodeStatus.FAILED: "red",
}


def _term_width() -> int:
    """Get terminal width, default 80."""
    return shutil.get_terminal_size((80, 24)).columns


def render_nodes_table(nodes: Sequence[ResponseNode]) -> Table:
    table = Table(title="Canvas", show_lines=False)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Prompt", max_width=30)
    table.add_column("Output", min_width=30)
    for node in nodes:
        style = STATUS_STYLES[node.status]
        table.add_row(
            node.id[:8],
            node.provider.display_name,
            f"[{style}]{node.status.value}[/{style}]",
            node.prompt,
            node.output or node.error,
        )
    return table


def render_links_table(links: Sequence[CorrectionLink]) -> Table:
    table = Table(title="Correction Links", show_lines=False)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Status")
    table.add_column("Feedback")
    for link in links:
        table.add_row(
            link.id[:8],
            f"{link.source_provider.value}:{link.source_node_id[:8]}",
            f"{link.target_provider.value}:{link.target_node_id[:8]}",
            link.kind.label,
            link.status.value,
            link.feedback or "",
        )
    return table


def _print_status(emoji: str, msg: str, style: str = "green"):
    """Print a status message."""
    console.print(f"  [{style}]{emoji}  {msg}[/{style}]")


def _print_welcome(selected: List[Provider], mock: bool):
    console.print()
    console.print(Panel("⚡ Agentic OS — Multi-Model Orchestration", style="bold cyan", width=min(_term_width(), 70)))
    names = ", ".join(p.display_name for p in selected) or "none (use /use)"
    console.print(f"  [dim]Providers[/dim]  [white]{names}[/white]")
    if mock:
        console.print("  [dim]Mode[/dim]       [white]mock responses[/white]")
    console.print("  [dim]Type a prompt to fan it out, [yellow]/help[/yellow] for commands, [yellow]/exit[/yellow] to quit[/dim]")
    console.print(Rule(style="dim"))
    console.print()


def _print_help():
    console.print()
    table = Table(show_header=False, box=None, padding=(0, 2), title="📖 Commands", title_style="bold cyan")
    table.add_column(style="yellow", min_width=30)
    table.add_column(style="dim")
    cmds = [
        ("<prompt>", "Send prompt to the selected providers"),
        ("/use <provider...>", "Select providers for the next prompts"),
        ("/tag <tag...>", "Tags attached to the next prompts"),
        ("/nodes", "List response nodes"),
        ("/show <node>", "Print one response in full"),
        ("/rm <node>", "Delete a node and its links"),
        ("/clear", "Delete every node and link"),
        ("/link <src> <dst> [kind]", "Create a correction link"),
        ("/resolve <link> <status> [text]", "Set link status and feedback"),
        ("/unlink <link>", "Delete a correction link"),
        ("/links", "List correction links"),
        ("/history [query] [#tag]", "Search the session timeline"),
        ("/forget <entry>", "Delete a history entry"),
        ("/wait", "Wait for in-flight prompts"),
        ("/export <file>", "Export canvas (.json, .dot, .html)"),
        ("/save [file]", "Export the session timeline as JSON"),
        ("/help", "Show this help"),
        ("/exit", "Leave the shell"),
    ]
    for cmd, desc in cmds:
        table.add_row(cmd, desc)
    console.print(table)
    console.print()


class ShellSession:
    """State and command handling for one interactive session."""

    def __init__(self, orchestrator: Orchestrator, selected: Optional[List[Provider]] = None):
        self.orchestrator = orchestrator
        self.selected: List[Provider] = list(selected or [])
        self.tags: List[str] = []
        orchestrator.bus.subscribe(self._on_node_updated, events.NODE_UPDATED)

    def _on_node_updated(self, event: events.Event) -> None:
        node: ResponseNode = event.payload["node"]
        if node.status is NodeStatus.SUCCEEDED:
            _print_status("●", f"{node.provider.display_name} [{node.id[:8]}] responded", "green")
        else:
            _print_status("✗", f"{node.provider.display_name} [{node.id[:8]}] failed: {node.error}", "red")

    def _node(self, ref: str) -> ResponseNode:
        node = self.orchestrator.find_node(ref)
        if node is None:
            raise ValidationError(f"No unique node matches '{ref}'")
        return node

    def _link_id(self, ref: str) -> str:
        matches = [link.id for link in self.orchestrator.links if link.id.startswith(ref)]
        if len(matches) != 1:
            raise ValidationError(f"No unique link matches '{ref}'")
        return matches[0]

    def _entry_id(self, ref: str) -> str:
        matches = [e.id for e in self.orchestrator.history if e.id.startswith(ref)]
        if len(matches) != 1:
            raise ValidationError(f"No unique history entry matches '{ref}'")
        return matches[0]

    def send(self, prompt: str) -> None:
        batch = self.orchestrator.start_fan_out(prompt, self.selected, tags=self.tags)
        n = len(batch.nodes)
        _print_status("🚀", f"Sent to {n} model{'s' if n != 1 else ''}", "cyan")

    async def handle(self, line: str) -> bool:
        """Run one input line. Returns False when the session should end."""
        if not line.startswith("/"):
            self.send(line)
            return True

        try:
            parts = shlex.split(line)
        except ValueError as exc:
            raise ValidationError(f"Could not parse command: {exc}") from None
        cmd, args = parts[0].lower(), parts[1:]
        orch = self.orchestrator

        if cmd == "/exit":
            return False
        elif cmd == "/help":
            _print_help()
        elif cmd == "/use":
            self.selected = list(Provider.parse_many(args))
            _print_status("✓", f"Providers: {', '.join(p.value for p in self.selected) or 'none'}")
        elif cmd == "/tag":
            self.tags = [t.lstrip("#") for t in args]
            _print_status("🏷", f"Tags: {', '.join(self.tags) or 'none'}")
        elif cmd == "/nodes":
            console.print(render_nodes_table(orch.nodes))
            data = graph_export.build_graph_data(orch.nodes, orch.links)
            console.print(f"  [dim]{graph_export.summary_line(data)}[/dim]")
        elif cmd == "/show":
            node = self._node(_require(args, 1, "/show <node>")[0])
            console.print(Panel(node.output or node.error or "(pending)", title=f"{node.provider.display_name} · {node.status.value}"))
        elif cmd == "/rm":
            node = self._node(_require(args, 1, "/rm <node>")[0])
            orch.remove_node(node.id)
            _print_status("🗑", f"Removed {node.label}")
        elif cmd == "/clear":
            count = orch.clear_nodes()
            _print_status("🧹", f"Cleared {count} node(s)")
        elif cmd == "/link":
            src, dst = _require(args, 2, "/link <src> <dst> [kind]")[:2]
            kind = args[2] if len(args) > 2 else CorrectionKind.CODE_REVIEW
            link = orch.create_link(self._node(src).id, self._node(dst).id, kind)
            _print_status("🔗", f"Correction link created ({link.kind.label}) [{link.id[:8]}]")
        elif cmd == "/resolve":
            ref, status = _require(args, 2, "/resolve <link> <completed|error> [feedback]")[:2]
            feedback = " ".join(args[2:]) or None
            try:
                orch.update_link(self._link_id(ref), status=status, feedback=feedback)
            except ValueError:
                raise ValidationError(f"Unknown link status '{status}'") from None
            _print_status("✓", "Link updated")
        elif cmd == "/unlink":
            orch.remove_link(self._link_id(_require(args, 1, "/unlink <link>")[0]))
            _print_status("✂", "Link removed")
        elif cmd == "/links":
            console.print(render_links_table(orch.links))
        elif cmd == "/history":
            tag = next((a[1:] for a in args if a.startswith("#")), None)
            query = " ".join(a for a in args if not a.startswith("#"))
            results = orch.search_history(query, tag)
            if results:
                console.print(render_history_table(results))
            else:
                _print_status("…", "No entries found", "yellow")
        elif cmd == "/forget":
            orch.remove_history_entry(self._entry_id(_require(args, 1, "/forget <entry>")[0]))
            _print_status("🗑", "History entry deleted")
        elif cmd == "/wait":
            await orch.drain()
            _print_status("✓", "All prompts settled")
        elif cmd == "/export":
            path = Path(_require(args, 1, "/export <file>")[0])
            data = graph_export.build_graph_data(orch.nodes, orch.links)
            graph_export.export_to(data, path)
            _print_status("💾", f"Canvas exported to {path}")
        elif cmd == "/save":
            path = Path(args[0]) if args else config.HISTORY_FILE
            count = orch.save_history(path)
            _print_status("💾", f"Saved {count} history entr{'y' if count == 1 else 'ies'} to {path}")
        else:
            _print_status("❓", f"Unknown command {cmd}. Type /help.", "yellow")
        return True


def _require(args: List[str], count: int, usage: str) -> List[str]:
    if len(args) < count:
        raise ValidationError(f"Usage: {usage}")
    return args


async def run_shell(orchestrator: Orchestrator, selected: Optional[List[Provider]] = None, mock: bool = False) -> None:
    """Start interactive REPL. Input is read off-loop so dispatches keep running."""
    session = ShellSession(orchestrator, selected or orchestrator.configured_providers())
    _print_welcome(session.selected, mock)

    while True:
        try:
            line = await asyncio.to_thread(console.input, "  [blue]●[/blue] [bold]You ›[/bold] ")
        except (EOFError, KeyboardInterrupt):
            break
        line = line.strip()
        if not line:
            continue
        try:
            if not await session.handle(line):
                break
        except (ValidationError, HistoryFileError) as exc:
            _print_status("⚠", str(exc), "red")

    if orchestrator.active_batches:
        _print_status("⏳", "Waiting for in-flight prompts...", "dim")
        await orchestrator.drain()
    console.print("\n  [dim]👋 Goodbye![/dim]\n")
