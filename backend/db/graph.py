"""Operations on the Strukturbild nodes and edges of a story.

Nodes and edges are stored in the story's partition under their own id.
Edges reference node ids by value and are never checked against existing
nodes when written; :func:`backend.db.views.find_dangling_refs` reports such
references on demand.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from backend.db import keys
from backend.db.errors import StoryNotFoundError, StoryValidationError
from backend.db.models import GraphEdge, GraphNode, NodeMap
from backend.db.store import ItemStore
from backend.db.views import load_partition

logger = logging.getLogger(__name__)

_NODE_FIELDS = ("label", "detail", "type", "time", "color")
_EDGE_FIELDS = ("label", "detail", "type")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _coord(value: Any) -> int:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError) as exc:
        raise StoryValidationError(f"coordinate must be a number, got {value!r}") from exc


def _node_id(payload: dict[str, Any]) -> str:
    for axis in ("x", "y"):
        if payload.get(axis) is not None:
            _coord(payload[axis])
    nid = str(payload.get("id") or "").strip()
    return keys.check_graph_id(nid) if nid else keys.new_node_id()


def _edge_id(payload: dict[str, Any]) -> str:
    source = str(payload.get("from") or "").strip()
    target = str(payload.get("to") or "").strip()
    if not source or not target:
        raise StoryValidationError("edges require both 'from' and 'to'")
    eid = str(payload.get("id") or "").strip()
    return keys.check_graph_id(eid or keys.edge_id(source, target))


def _merge_node(story_id: str, nid: str, payload: dict[str, Any], existing: GraphNode | None) -> GraphNode:
    node = existing or GraphNode(id=nid, label="", story_id=story_id)
    node.story_id = story_id
    for name in _NODE_FIELDS:
        if payload.get(name) is not None:
            setattr(node, name, str(payload[name]))
    for axis in ("x", "y"):
        if payload.get(axis) is not None:
            setattr(node, axis, _coord(payload[axis]))
    return node


def _merge_edge(story_id: str, eid: str, payload: dict[str, Any], existing: GraphEdge | None) -> GraphEdge:
    edge = existing or GraphEdge(id=eid, source="", target="", story_id=story_id)
    edge.story_id = story_id
    edge.source = str(payload["from"]).strip()
    edge.target = str(payload["to"]).strip()
    for name in _EDGE_FIELDS:
        if payload.get(name) is not None:
            setattr(edge, name, str(payload[name]))
    return edge


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def submit_graph(
    store: ItemStore,
    story_id: str,
    nodes: Iterable[dict[str, Any]] = (),
    edges: Iterable[dict[str, Any]] = (),
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Upsert nodes and edges for a story.

    Nodes are keyed by ``id`` (a UUID is generated when missing).  Fields in
    the payload overwrite the stored node; absent fields keep their value.
    Edges are keyed by ``id`` or, when missing, by ``"<from>|<to>"``, so
    re-submitting an unlabelled pair updates it while explicit ids allow
    parallel edges.

    Every payload is validated before the first write.

    Returns:
        The written ``(nodes, edges)``.

    Raises:
        StoryValidationError: Blank edge endpoint, reserved element id, or
            an id shared by a node and an edge.
        StoryNotFoundError: The story does not exist.
    """
    node_payloads = [(_node_id(p), p) for p in nodes]
    edge_payloads = [(_edge_id(p), p) for p in edges]

    partition = load_partition(store, story_id)
    partition.require_story()
    existing_nodes = {n.id: n for n in partition.nodes}
    existing_edges = {e.id: e for e in partition.edges}

    node_ids = set(existing_nodes) | {nid for nid, _ in node_payloads}
    edge_ids = set(existing_edges) | {eid for eid, _ in edge_payloads}
    clashes = node_ids & edge_ids
    if clashes:
        # nodes and edges share one sort-key space
        raise StoryValidationError(
            f"ids used by both a node and an edge: {sorted(clashes)!r}"
        )

    written_nodes: list[GraphNode] = []
    for nid, payload in node_payloads:
        node = _merge_node(story_id, nid, payload, existing_nodes.get(nid))
        existing_nodes[nid] = node
        store.put_item(node.to_item())
        written_nodes.append(node)

    written_edges: list[GraphEdge] = []
    for eid, payload in edge_payloads:
        edge = _merge_edge(story_id, eid, payload, existing_edges.get(eid))
        existing_edges[eid] = edge
        store.put_item(edge.to_item())
        written_edges.append(edge)

    logger.info(
        "graph.submitted",
        extra={"story_id": story_id, "nodes": len(written_nodes), "edges": len(written_edges)},
    )
    return written_nodes, written_edges


def delete_node(store: ItemStore, story_id: str, node_id: str) -> list[str]:
    """Delete a node, every edge touching it, and its paragraph-map entries.

    Returns:
        Ids of the edges removed with the node.

    Raises:
        StoryNotFoundError: The story or the node does not exist.
    """
    partition = load_partition(store, story_id)
    partition.require_story()
    if not any(n.id == node_id for n in partition.nodes):
        raise StoryNotFoundError(f"node not found: {node_id!r}")

    pk = keys.story_pk(story_id)
    store.delete_item(pk, node_id)

    removed_edges = [e.id for e in partition.edges if node_id in (e.source, e.target)]
    for eid in removed_edges:
        store.delete_item(pk, eid)

    node_map = partition.node_map
    if node_map is not None and any(node_id in ids for ids in node_map.entries.values()):
        entries = {
            pid: [nid for nid in ids if nid != node_id]
            for pid, ids in node_map.entries.items()
        }
        store.put_item(NodeMap(story_id=story_id, entries=entries).to_item())

    logger.info(
        "node.deleted",
        extra={"story_id": story_id, "node_id": node_id, "edges_removed": len(removed_edges)},
    )
    return removed_edges


def delete_edge(store: ItemStore, story_id: str, edge_id: str) -> None:
    """Delete a single edge.

    Raises:
        StoryNotFoundError: The story or the edge does not exist.
    """
    partition = load_partition(store, story_id)
    partition.require_story()
    if not any(e.id == edge_id for e in partition.edges):
        raise StoryNotFoundError(f"edge not found: {edge_id!r}")
    store.delete_item(keys.story_pk(story_id), edge_id)
    logger.info("edge.deleted", extra={"story_id": story_id, "edge_id": edge_id})
