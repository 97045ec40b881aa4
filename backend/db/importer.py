"""Bulk story import.

An import bundle is the JSON document exported by the story editor::

    {
        "story": {"storyId": "...", "schoolId": "...", "title": "..."},
        "paragraphs": [{"index": 1, "title": "...", "bodyMd": "...",
                        "citations": [{"transcriptId": "...", "minutes": [3]}]}],
        "details": [{"paragraphIndex": 1, "kind": "quote", "transcriptId": "...",
                     "startMinute": 3, "endMinute": 4, "text": "..."}],
        "paragraphNodeMapByIndex": {"1": ["n1", "n2"]}
    }

Importing is a **full replace** of the story's narrative: every existing
paragraph and detail is deleted and recreated with fresh ids, and the
paragraph-node map is rewritten.  Graph nodes and edges are left alone.
Re-importing a bundle with fewer paragraphs permanently drops the extras.

The whole bundle is validated before the first write.  The writes are not
transactional: if the store fails half-way the story can be left with new
paragraphs but missing details, and the caller must retry the full bundle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from backend.db import keys
from backend.db.errors import StorageError, StoryValidationError
from backend.db.models import DETAIL_KIND_QUOTE, Citation, Detail, NodeMap, Paragraph, Story
from backend.db.store import ItemStore
from backend.db.stories import (
    _now,
    as_citations,
    clean_node_ids,
    validate_citations,
    validate_detail,
    validate_index,
    validate_node_map,
)
from backend.db.views import load_partition

logger = logging.getLogger(__name__)


@dataclass
class _ParagraphIn:
    index: int
    title: str
    body_md: str
    citations: list[Citation]


@dataclass
class _DetailIn:
    paragraph_index: int
    transcript_id: str
    start_minute: int
    end_minute: int
    text: str


@dataclass
class ImportResult:
    story_id: str
    paragraph_ids: dict[int, str] = field(default_factory=dict)
    detail_count: int = 0
    node_map: dict[str, list[str]] = field(default_factory=dict)
    dropped_map_indices: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing / validation
# ---------------------------------------------------------------------------

def _int_field(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise StoryValidationError(f"{name} must be an integer, got {value!r}")
    return value


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_paragraph(raw: dict[str, Any]) -> _ParagraphIn:
    index = _int_field(raw.get("index"), "paragraph index")
    validate_index(index)
    try:
        citations = as_citations(raw.get("citations"))
    except (AttributeError, TypeError, ValueError) as exc:
        raise StoryValidationError(f"malformed citations in paragraph {index}") from exc
    validate_citations(citations)
    return _ParagraphIn(
        index=index,
        title=_text(raw.get("title")).strip(),
        body_md=_text(raw.get("bodyMd")),
        citations=citations,
    )


def _parse_detail(raw: dict[str, Any], indices: set[int]) -> _DetailIn:
    start = _int_field(raw.get("startMinute", 0), "detail startMinute")
    end = _int_field(raw.get("endMinute", 0), "detail endMinute")
    validate_detail(raw.get("kind"), start, end)
    paragraph_index = _int_field(raw.get("paragraphIndex"), "detail paragraphIndex")
    if paragraph_index < 1:
        raise StoryValidationError("detail paragraphIndex must be >= 1")
    if paragraph_index not in indices:
        raise StoryValidationError(f"No paragraph for index {paragraph_index}")
    return _DetailIn(
        paragraph_index=paragraph_index,
        transcript_id=_text(raw.get("transcriptId")),
        start_minute=start,
        end_minute=end,
        text=_text(raw.get("text")),
    )


def _require(value: Any, name: str) -> str:
    text = _text(value).strip()
    if not text:
        raise StoryValidationError(f"{name} is required")
    return text


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def import_story(store: ItemStore, bundle: dict[str, Any]) -> ImportResult:
    """Replace a story's paragraphs, details and paragraph-node map.

    Order of writes: story metadata, delete old details, delete old
    paragraphs, create paragraphs, create details, write the node map.

    Args:
        store: Item store to write to.
        bundle: Import document (see module docstring).  Unknown keys are
            ignored.

    Returns:
        An :class:`ImportResult` carrying the resolved story id.

    Raises:
        StoryValidationError: Anything wrong with the bundle.  Nothing has
            been written in that case.
        StorageError: The store failed part-way; state may be partial.
    """
    story_in = bundle.get("story") or {}
    school_id = _require(story_in.get("schoolId"), "story.schoolId")
    title = _require(story_in.get("title"), "story.title")

    paragraphs_in = [_parse_paragraph(p) for p in bundle.get("paragraphs") or []]
    indices = {p.index for p in paragraphs_in}
    details_in = [_parse_detail(d, indices) for d in bundle.get("details") or []]
    map_by_index = validate_node_map(
        bundle.get("paragraphNodeMapByIndex") or {}, "paragraphNodeMapByIndex"
    )

    story_id = _text(story_in.get("storyId")).strip() or keys.new_story_id()
    result = ImportResult(story_id=story_id)
    step = "load"
    try:
        existing = load_partition(store, story_id)
        now = _now()

        # 1. story metadata, keeping the original creation time
        step = "story"
        created_at = existing.story.created_at if existing.story and existing.story.created_at else now
        story = Story(story_id, school_id, title, created_at=created_at, updated_at=now)
        store.put_item(story.to_item())

        # 2. clean slate: details first, then paragraphs
        step = "delete"
        pk = keys.story_pk(story_id)
        for detail in existing.details:
            store.delete_item(pk, keys.detail_sk(detail.paragraph_id, detail.detail_id))
        for paragraph in existing.paragraphs:
            store.delete_item(pk, paragraph.sort_key)

        # 3. paragraphs with fresh ids; the index is the caller's only handle
        step = "paragraphs"
        by_index: dict[int, Paragraph] = {}
        for p in paragraphs_in:
            paragraph = Paragraph(
                paragraph_id=keys.new_paragraph_id(),
                story_id=story_id,
                index=p.index,
                body_md=p.body_md,
                title=p.title,
                citations=p.citations,
                created_at=now,
                updated_at=now,
            )
            store.put_item(paragraph.to_item())
            by_index[p.index] = paragraph
        result.paragraph_ids = {i: p.paragraph_id for i, p in by_index.items()}

        # 4. details resolved through the index map
        step = "details"
        for d in details_in:
            owner = by_index[d.paragraph_index]
            detail = Detail(
                detail_id=keys.new_detail_id(),
                story_id=story_id,
                paragraph_id=owner.paragraph_id,
                kind=DETAIL_KIND_QUOTE,
                transcript_id=d.transcript_id,
                start_minute=d.start_minute,
                end_minute=d.end_minute,
                text=d.text,
            )
            store.put_item(detail.to_item())
            result.detail_count += 1

        # 5. paragraph-node map, keyed by the new paragraph ids
        step = "node_map"
        for raw_index, node_ids in map_by_index.items():
            paragraph = by_index.get(_parse_map_index(raw_index))
            if paragraph is None:
                result.dropped_map_indices.append(str(raw_index))
                continue
            result.node_map[paragraph.paragraph_id] = clean_node_ids(node_ids)
        store.put_item(NodeMap(story_id=story_id, entries=result.node_map).to_item())
    except StorageError:
        logger.error("import.failed", extra={"story_id": story_id, "step": step})
        raise

    if result.dropped_map_indices:
        logger.warning(
            "import.dropped_map_indices",
            extra={"story_id": story_id, "indices": result.dropped_map_indices},
        )
    logger.info(
        "import.completed",
        extra={
            "story_id": story_id,
            "paragraphs": len(paragraphs_in),
            "details": result.detail_count,
            "replaced_paragraphs": len(existing.paragraphs),
        },
    )
    return result


def _parse_map_index(raw: Any) -> Optional[int]:
    try:
        return int(str(raw).strip())
    except ValueError:
        return None
