"""Dataclass models representing stored records.

These are plain Python objects – not ORM models.  Each record knows how to
serialise itself to a storage item (``to_item``) and to its public JSON shape
(``to_dict``, camelCase keys).  ``decode_item`` turns a raw item back into the
matching record type by inspecting its discriminator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from backend.db import keys

logger = logging.getLogger(__name__)

KIND_STORY = "story"
KIND_PARAGRAPH = "paragraph"
KIND_DETAIL = "detail"
KIND_NODE_MAP = "nodemap"
KIND_NODE = "node"
KIND_EDGE = "edge"

DETAIL_KIND_QUOTE = "quote"


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _int(value: Any) -> int:
    # DynamoDB hands numbers back as Decimal
    return int(value) if value is not None else 0


@dataclass
class Citation:
    transcript_id: str
    minutes: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"transcriptId": self.transcript_id, "minutes": list(self.minutes)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Citation:
        return cls(
            transcript_id=_str(data.get("transcriptId")),
            minutes=[_int(m) for m in data.get("minutes") or []],
        )


@dataclass
class Story:
    story_id: str
    school_id: str
    title: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyId": self.story_id,
            "schoolId": self.school_id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": keys.story_sk(self.story_id),
            "recordKind": KIND_STORY,
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Story:
        return cls(
            story_id=_str(item.get("storyId")),
            school_id=_str(item.get("schoolId")),
            title=_str(item.get("title")),
            created_at=_str(item.get("createdAt")),
            updated_at=_str(item.get("updatedAt")),
        )


@dataclass
class Paragraph:
    paragraph_id: str
    story_id: str
    index: int
    body_md: str
    title: str = ""
    citations: list[Citation] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def sort_key(self) -> str:
        return keys.paragraph_sk(self.index, self.paragraph_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "paragraphId": self.paragraph_id,
            "storyId": self.story_id,
            "index": self.index,
            "bodyMd": self.body_md,
            "citations": [c.to_dict() for c in self.citations],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.title:
            data["title"] = self.title
        return data

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": self.sort_key,
            "recordKind": KIND_PARAGRAPH,
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Paragraph:
        return cls(
            paragraph_id=_str(item.get("paragraphId")),
            story_id=_str(item.get("storyId")),
            index=_int(item.get("index")),
            body_md=_str(item.get("bodyMd")),
            title=_str(item.get("title")),
            citations=[Citation.from_dict(c) for c in item.get("citations") or []],
            created_at=_str(item.get("createdAt")),
            updated_at=_str(item.get("updatedAt")),
        )


@dataclass
class Detail:
    detail_id: str
    story_id: str
    paragraph_id: str
    kind: str
    transcript_id: str
    start_minute: int
    end_minute: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "detailId": self.detail_id,
            "storyId": self.story_id,
            "paragraphId": self.paragraph_id,
            "kind": self.kind,
            "transcriptId": self.transcript_id,
            "startMinute": self.start_minute,
            "endMinute": self.end_minute,
            "text": self.text,
        }

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": keys.detail_sk(self.paragraph_id, self.detail_id),
            "recordKind": KIND_DETAIL,
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Detail:
        return cls(
            detail_id=_str(item.get("detailId")),
            story_id=_str(item.get("storyId")),
            paragraph_id=_str(item.get("paragraphId")),
            kind=_str(item.get("kind")),
            transcript_id=_str(item.get("transcriptId")),
            start_minute=_int(item.get("startMinute")),
            end_minute=_int(item.get("endMinute")),
            text=_str(item.get("text")),
        )


@dataclass
class NodeMap:
    """The paragraph id -> node ids association of one story."""

    story_id: str
    entries: dict[str, list[str]] = field(default_factory=dict)

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": keys.node_map_sk(self.story_id),
            "recordKind": KIND_NODE_MAP,
            "storyId": self.story_id,
            "paragraphNodeMap": {pid: list(ids) for pid, ids in self.entries.items()},
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> NodeMap:
        raw = item.get("paragraphNodeMap") or {}
        return cls(
            story_id=_str(item.get("storyId")),
            entries={pid: [_str(n) for n in ids or []] for pid, ids in raw.items()},
        )


# Optional presentation fields shared by nodes and edges.
_NODE_OPTIONAL = ("detail", "type", "time", "color")
_EDGE_OPTIONAL = ("detail", "type")


@dataclass
class GraphNode:
    id: str
    label: str
    story_id: str
    x: int = 0
    y: int = 0
    detail: Optional[str] = None
    type: Optional[str] = None
    time: Optional[str] = None
    color: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "label": self.label}
        for name in _NODE_OPTIONAL:
            value = getattr(self, name)
            if value:
                data[name] = value
        data.update({"x": self.x, "y": self.y, "storyId": self.story_id})
        return data

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": self.id,
            "recordKind": KIND_NODE,
            "isNode": True,
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> GraphNode:
        return cls(
            id=_str(item.get("id") or item.get("sk")),
            label=_str(item.get("label")),
            story_id=_str(item.get("storyId")),
            x=_int(item.get("x")),
            y=_int(item.get("y")),
            **{name: item.get(name) or None for name in _NODE_OPTIONAL},
        )


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    story_id: str
    label: str = ""
    detail: Optional[str] = None
    type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.source,
            "to": self.target,
            "label": self.label,
        }
        for name in _EDGE_OPTIONAL:
            value = getattr(self, name)
            if value:
                data[name] = value
        data["storyId"] = self.story_id
        return data

    def to_item(self) -> dict[str, Any]:
        return {
            "pk": keys.story_pk(self.story_id),
            "sk": self.id,
            "recordKind": KIND_EDGE,
            "isNode": False,
            **self.to_dict(),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> GraphEdge:
        return cls(
            id=_str(item.get("id") or item.get("sk")),
            source=_str(item.get("from")),
            target=_str(item.get("to")),
            story_id=_str(item.get("storyId")),
            label=_str(item.get("label")),
            **{name: item.get(name) or None for name in _EDGE_OPTIONAL},
        )


Record = Union[Story, Paragraph, Detail, NodeMap, GraphNode, GraphEdge]

_DECODERS = {
    KIND_STORY: Story.from_item,
    KIND_PARAGRAPH: Paragraph.from_item,
    KIND_DETAIL: Detail.from_item,
    KIND_NODE_MAP: NodeMap.from_item,
    KIND_NODE: GraphNode.from_item,
    KIND_EDGE: GraphEdge.from_item,
}


def _discriminator(item: dict[str, Any]) -> Optional[str]:
    kind = item.get("recordKind")
    if kind in _DECODERS:
        return kind
    if "isNode" in item:
        return KIND_NODE if item["isNode"] else KIND_EDGE
    # Items written without a discriminator: fall back to key shape.
    sk = _str(item.get("sk"))
    if sk.startswith(keys.STORY_PREFIX):
        return KIND_STORY
    if sk.startswith(keys.PARAGRAPH_PREFIX):
        return KIND_PARAGRAPH
    if sk.startswith(keys.DETAIL_PREFIX):
        return KIND_DETAIL
    if sk.startswith(keys.NODE_MAP_PREFIX):
        return KIND_NODE_MAP
    return None


def decode_item(item: dict[str, Any]) -> Optional[Record]:
    """Decode a raw storage item into its record type.

    Returns ``None`` for items that match no known kind.
    """
    kind = _discriminator(item)
    if kind is None:
        logger.debug("item.unrecognised", extra={"sk": item.get("sk")})
        return None
    return _DECODERS[kind](item)


# ---------------------------------------------------------------------------
# Assembled views
# ---------------------------------------------------------------------------

@dataclass
class StoryFull:
    story: Story
    paragraphs: list[Paragraph] = field(default_factory=list)
    details_by_paragraph: dict[str, list[Detail]] = field(default_factory=dict)
    paragraph_node_map: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "story": self.story.to_dict(),
            "paragraphs": [p.to_dict() for p in self.paragraphs],
            "detailsByParagraph": {
                pid: [d.to_dict() for d in details]
                for pid, details in self.details_by_paragraph.items()
            },
            "paragraphNodeMap": {pid: list(ids) for pid, ids in self.paragraph_node_map.items()},
        }


@dataclass
class StoryGraph:
    story: Story
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    paragraphs: list[Paragraph] = field(default_factory=list)
    paragraph_node_map: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyId": self.story.story_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "story": self.story.to_dict(),
            "paragraphs": [p.to_dict() for p in self.paragraphs],
            "paragraphNodeMap": {pid: list(ids) for pid, ids in self.paragraph_node_map.items()},
        }
