"""Node/edge data set for response canvases, plus DOT and HTML exports."""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .models import CorrectionLink, ResponseNode


def build_graph_data(nodes: Sequence[ResponseNode], links: Sequence[CorrectionLink]) -> Dict[str, List[Dict[str, Any]]]:
    """Graph payload any drawing surface can consume.

    Edges whose endpoints are not among ``nodes`` are left out.
    """
    node_ids = {n.id for n in nodes}
    return {
        "nodes": [
            {
                "id": n.id,
                "provider": n.provider.value,
                "label": f"{n.provider.display_name} ({n.status.value})",
                "status": n.status.value,
                "prompt": n.prompt,
                "output": n.output or n.error,
                "created_at": n.created_at.isoformat(),
            }
            for n in nodes
        ],
        "edges": [
            {
                "id": link.id,
                "source": link.source_node_id,
                "target": link.target_node_id,
                "kind": link.kind.value,
                "status": link.status.value,
                "label": link.kind.label,
            }
            for link in links
            if link.source_node_id in node_ids and link.target_node_id in node_ids
        ],
    }


def summary_line(data: Dict[str, List[Dict[str, Any]]]) -> str:
    """E.g. ``"3 responses • 1 connection"``."""
    n_nodes = len(data["nodes"])
    n_edges = len(data["edges"])
    return (
        f"{n_nodes} response{'s' if n_nodes != 1 else ''} • "
        f"{n_edges} connection{'s' if n_edges != 1 else ''}"
    )


def export_json(data: Dict[str, List[Dict[str, Any]]], output_file: Path) -> None:
    output_file.write_text(json.dumps(data, indent=2), encoding="utf-8")


def export_dot(data: Dict[str, List[Dict[str, Any]]], output_file: Path) -> None:
    lines = ["digraph AgenticOS {"]
    lines.append("  rankdir=LR;")

    for node in data["nodes"]:
        lines.append(f'  "{node["id"]}" [label="{_esc(node["label"])}"];')

    for edge in data["edges"]:
        label = f'{edge["kind"]} ({edge["status"]})'
        lines.append(f'  "{edge["source"]}" -> "{edge["target"]}" [label="{_esc(label)}"];')

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_html(data: Dict[str, List[Dict[str, Any]]], output_file: Path) -> None:
    """Standalone page listing responses and correction links."""
    title = html.escape(summary_line(data))
    doc = f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Agentic OS Canvas</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; white-space: pre-wrap; }}
  </style>
</head>
<body>
  <h1>Agentic OS Canvas</h1>
  <p>{title}</p>
  <div id="container">
    <div class="panel">
      <h2>Responses</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Connections</h2>
      <ul id="edges"></ul>
    </div>
  </div>
  <script>
    const graph = {json.dumps(data)};
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    graph.nodes.forEach(n => {{
      const li = document.createElement('li');
      li.textContent = `${{n.label}}: ${{n.output}}`;
      nodesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.textContent = `${{e.source.slice(0, 8)}} --${{e.kind}}--> ${{e.target.slice(0, 8)}} [${{e.status}}]`;
      edgesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""
    output_file.write_text(doc, encoding="utf-8")


def _esc(text: str) -> str:
    return text.replace('"', '\\"')


def export_to(data: Dict[str, List[Dict[str, Any]]], output_file: Path) -> None:
    """Export using the format implied by the file suffix (JSON by default)."""
    exporter = {".dot": export_dot, ".html": export_html}.get(output_file.suffix.lower(), export_json)
    exporter(data, output_file)
