"""Read-side assembly of the story and graph views.

Both views come from a single partition query.  Raw items are decoded into
records (see :func:`backend.db.models.decode_item`), bucketed by type, and
then sorted and cross-referenced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from backend.db import keys
from backend.db.errors import StoryNotFoundError
from backend.db.models import (
    Detail,
    GraphEdge,
    GraphNode,
    NodeMap,
    Paragraph,
    Story,
    StoryFull,
    StoryGraph,
    decode_item,
)
from backend.db.store import ItemStore


@dataclass
class Partition:
    """Every decoded record of one story partition."""

    story_id: str
    story: Optional[Story] = None
    paragraphs: list[Paragraph] = field(default_factory=list)
    details: list[Detail] = field(default_factory=list)
    node_map: Optional[NodeMap] = None
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def require_story(self) -> Story:
        if self.story is None:
            raise StoryNotFoundError(f"story not found: {self.story_id!r}")
        return self.story

    def find_paragraph(self, paragraph_id: str) -> Optional[Paragraph]:
        for paragraph in self.paragraphs:
            if paragraph.paragraph_id == paragraph_id:
                return paragraph
        return None


def load_partition(store: ItemStore, story_id: str) -> Partition:
    """Query the story's partition once and bucket the records by type."""
    partition = Partition(story_id=story_id)
    for item in store.query(keys.story_pk(story_id)):
        record = decode_item(item)
        if isinstance(record, Story):
            partition.story = record
        elif isinstance(record, Paragraph):
            partition.paragraphs.append(record)
        elif isinstance(record, Detail):
            partition.details.append(record)
        elif isinstance(record, NodeMap):
            partition.node_map = record
        elif isinstance(record, GraphNode):
            partition.nodes.append(record)
        elif isinstance(record, GraphEdge):
            partition.edges.append(record)
    return partition


# ---------------------------------------------------------------------------
# Assembly helpers
# ---------------------------------------------------------------------------

def ordered_paragraphs(paragraphs: list[Paragraph]) -> list[Paragraph]:
    """Paragraphs by index, ties broken by ascending paragraph id."""
    return sorted(paragraphs, key=lambda p: (p.index, p.paragraph_id))


def group_details(details: list[Detail]) -> dict[str, list[Detail]]:
    grouped: dict[str, list[Detail]] = {}
    for detail in sorted(details, key=lambda d: (d.paragraph_id, d.detail_id)):
        grouped.setdefault(detail.paragraph_id, []).append(detail)
    return grouped


def live_node_map(partition: Partition) -> dict[str, list[str]]:
    """The stored paragraph-node map restricted to existing paragraphs."""
    if partition.node_map is None:
        return {}
    existing = {p.paragraph_id for p in partition.paragraphs}
    return {
        pid: list(node_ids)
        for pid, node_ids in partition.node_map.entries.items()
        if pid in existing
    }


def build_full_story(partition: Partition) -> StoryFull:
    return StoryFull(
        story=partition.require_story(),
        paragraphs=ordered_paragraphs(partition.paragraphs),
        details_by_paragraph=group_details(partition.details),
        paragraph_node_map=live_node_map(partition),
    )


def build_graph(partition: Partition) -> StoryGraph:
    return StoryGraph(
        story=partition.require_story(),
        nodes=sorted(partition.nodes, key=lambda n: n.id),
        edges=sorted(partition.edges, key=lambda e: e.id),
        paragraphs=ordered_paragraphs(partition.paragraphs),
        paragraph_node_map=live_node_map(partition),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_full_story(store: ItemStore, story_id: str) -> StoryFull:
    """Story metadata, ordered paragraphs, grouped details and node map.

    Raises:
        StoryNotFoundError: If the partition holds no story metadata, even
            when paragraphs or details exist.
    """
    return build_full_story(load_partition(store, story_id))


def get_graph(store: ItemStore, story_id: str) -> StoryGraph:
    """Nodes and edges of the story plus its paragraphs and node map.

    Raises:
        StoryNotFoundError: If the partition holds no story metadata.
    """
    return build_graph(load_partition(store, story_id))


@dataclass
class DanglingReport:
    """References in a graph that point at nodes which do not exist."""

    edges: list[GraphEdge] = field(default_factory=list)
    node_map: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.edges and not self.node_map


def dangling_refs(
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    node_map: Optional[dict[str, list[str]]] = None,
) -> DanglingReport:
    """Report edges and map entries referencing unknown node ids.

    Writes never reject such references; this is the optional check.
    """
    node_ids = {n.id for n in nodes}
    report = DanglingReport()
    for edge in edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            report.edges.append(edge)
    for pid, ids in (node_map or {}).items():
        missing = [nid for nid in ids if nid not in node_ids]
        if missing:
            report.node_map[pid] = missing
    return report


def find_dangling_refs(graph: StoryGraph) -> DanglingReport:
    return dangling_refs(graph.nodes, graph.edges, graph.paragraph_node_map)
