"""Strukturbild graph commands."""

import json
from pathlib import Path

import typer

from backend.db import keys
from backend.db.graph import submit_graph
from backend.db.models import GraphEdge, GraphNode
from backend.db.views import dangling_refs, find_dangling_refs, get_graph
from cli.context import abort, handle_story_errors, load_json, store_session
from cli.rendering import render_dangling, render_graph

graph_app = typer.Typer(help="Show, submit and check story graphs.", no_args_is_help=True)


@graph_app.command("show")
@handle_story_errors
def graph_show(
    story_id: str = typer.Argument(..., help="Story id."),
    as_json: bool = typer.Option(False, "--json", help="Print the graph view as JSON."),
) -> None:
    """Display the story graph grouped by paragraph."""
    with store_session() as store:
        graph = get_graph(store, story_id)
    if as_json:
        typer.echo(json.dumps(graph.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(render_graph(graph))


@graph_app.command("submit")
@handle_story_errors
def graph_submit(
    path: Path = typer.Argument(..., help='JSON file: {"storyId", "nodes", "edges"}.'),
) -> None:
    """Upsert the nodes and edges in a graph file."""
    payload = load_json(path)
    story_id = str(payload.get("storyId") or "").strip()
    if not story_id:
        abort("storyId is required")
    with store_session() as store:
        nodes, edges = submit_graph(
            store, story_id, payload.get("nodes") or [], payload.get("edges") or []
        )
    typer.echo(f"✅ {story_id}: {len(nodes)} nodes, {len(edges)} edges written")


def _graph_from_file(payload: dict) -> tuple[list[GraphNode], list[GraphEdge], dict]:
    story_id = str(payload.get("storyId") or "")
    nodes = [GraphNode.from_item({**n, "storyId": story_id}) for n in payload.get("nodes") or []]
    edges = []
    for e in payload.get("edges") or []:
        edge = GraphEdge.from_item({**e, "storyId": story_id})
        edge.id = edge.id or keys.edge_id(edge.source, edge.target)
        edges.append(edge)
    return nodes, edges, payload.get("paragraphNodeMap") or {}


@graph_app.command("validate-refs")
@handle_story_errors
def graph_validate_refs(
    target: str = typer.Argument(..., help="Story id, or path to a graph JSON file."),
) -> None:
    """Report edges and paragraph-map entries that name unknown nodes.

    Exits with code 1 when any dangling reference is found.
    """
    path = Path(target)
    if path.is_file():
        nodes, edges, node_map = _graph_from_file(load_json(path))
        report = dangling_refs(nodes, edges, node_map)
    else:
        with store_session() as store:
            report = find_dangling_refs(get_graph(store, target))

    typer.echo(render_dangling(report))
    if not report.ok:
        raise typer.Exit(code=1)
