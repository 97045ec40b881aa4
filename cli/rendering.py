"""Utilities for rendering stories and their graphs in the CLI."""

from __future__ import annotations

from typing import Optional

from backend.db.models import GraphEdge, GraphNode, StoryFull, StoryGraph
from backend.db.views import DanglingReport


def _branch(items: list[str], prefix: str = "") -> list[str]:
    lines = []
    for i, text in enumerate(items):
        connector = "└── " if i == len(items) - 1 else "├── "
        lines.append(f"{prefix}{connector}{text}")
    return lines


def _get_icon(node_type: Optional[str]) -> str:
    icons = {
        "person": "👤",
        "event": "📅",
        "place": "📍",
        "organisation": "🏛️",
        "organization": "🏛️",
    }
    return icons.get((node_type or "").lower(), "●")


def _node_line(node: GraphNode) -> str:
    line = f"{_get_icon(node.type)} {node.label or '(no label)'}"
    if node.time:
        line += f" ({node.time})"
    return f"{line}  [{node.id}]"


def _edge_line(edge: GraphEdge, labels: dict[str, str]) -> str:
    source = labels.get(edge.source, f"?{edge.source}")
    target = labels.get(edge.target, f"?{edge.target}")
    middle = f"──{edge.label}──▶" if edge.label else "──▶"
    return f"{source} {middle} {target}"


def render_story(full: StoryFull) -> str:
    """Render a story as a paragraph outline with its quote details."""
    lines = [f"📖 {full.story.title}  [{full.story.story_id}]  school={full.story.school_id}"]
    count = len(full.paragraphs)
    for i, p in enumerate(full.paragraphs):
        is_last = i == count - 1
        heading = f"§{p.index} {p.title}".rstrip() if p.title else f"§{p.index}"
        lines.append(f"{'└── ' if is_last else '├── '}{heading}  [{p.paragraph_id}]")
        child_prefix = "    " if is_last else "│   "
        children = []
        body = p.body_md.strip().splitlines()
        if body:
            children.append(body[0] if len(body) == 1 else f"{body[0]} …")
        for c in p.citations:
            minutes = ", ".join(str(m) for m in c.minutes)
            children.append(f"cites {c.transcript_id} @ {minutes or '-'}")
        for d in full.details_by_paragraph.get(p.paragraph_id, []):
            children.append(f"❝ {d.text}❞ ({d.transcript_id} {d.start_minute}-{d.end_minute})")
        lines.extend(_branch(children, child_prefix))
    return "\n".join(lines)


def render_graph(graph: StoryGraph) -> str:
    """Render the graph grouped by the paragraphs its nodes are mapped to.

    Nodes mapped to no paragraph are listed under "Unmapped"; edges follow.
    """
    nodes = {n.id: n for n in graph.nodes}
    labels = {n.id: n.label or n.id for n in graph.nodes}
    lines = [f"🗺️  {graph.story.title}  [{graph.story.story_id}]"]

    mapped: set[str] = set()
    for p in graph.paragraphs:
        node_ids = graph.paragraph_node_map.get(p.paragraph_id, [])
        if not node_ids:
            continue
        lines.append(f"§{p.index} {p.title}".rstrip())
        items = []
        for nid in node_ids:
            mapped.add(nid)
            node = nodes.get(nid)
            items.append(_node_line(node) if node else f"⚠ missing node [{nid}]")
        lines.extend(_branch(items))

    unmapped = [n for n in graph.nodes if n.id not in mapped]
    if unmapped:
        lines.append("Unmapped")
        lines.extend(_branch([_node_line(n) for n in unmapped]))

    if graph.edges:
        lines.append("Edges")
        lines.extend(_branch([_edge_line(e, labels) for e in graph.edges]))
    return "\n".join(lines)


def render_dangling(report: DanglingReport) -> str:
    if report.ok:
        return "No dangling references."
    lines = []
    for edge in report.edges:
        lines.append(f"edge {edge.id}: {edge.source} -> {edge.target}")
    for pid, missing in report.node_map.items():
        lines.append(f"paragraph {pid}: unknown nodes {', '.join(missing)}")
    return "\n".join(lines)
