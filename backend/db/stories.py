"""Story, paragraph and detail operations.

Paragraph and detail records sit in their story's partition (see
``backend.db.keys``).  There is no paragraph -> story reverse index, so every
paragraph operation takes the story id from the caller and finds the
paragraph by scanning that partition.  Stories, paragraphs and details are
never deleted here; only :func:`backend.db.importer.import_story` replaces
paragraphs and details wholesale.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from backend.db import keys
from backend.db.errors import StoryNotFoundError, StoryValidationError
from backend.db.models import (
    DETAIL_KIND_QUOTE,
    Citation,
    Detail,
    NodeMap,
    Paragraph,
    Story,
)
from backend.db.store import ItemStore
from backend.db.views import load_partition

logger = logging.getLogger(__name__)

CitationInput = Union[Citation, dict[str, Any]]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise StoryValidationError(f"{name} is required")
    return value.strip()


def _check_raw_citation(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise StoryValidationError(f"citation must be an object, got {raw!r}")
    minutes = raw.get("minutes") or []
    if not isinstance(minutes, list):
        raise StoryValidationError("citation minutes must be a list of integers")
    for minute in minutes:
        if isinstance(minute, bool) or not isinstance(minute, int):
            raise StoryValidationError(f"citation minutes must be integers, got {minute!r}")
    return raw


def as_citations(values: Optional[Iterable[CitationInput]]) -> list[Citation]:
    """Coerce raw citation dicts to :class:`Citation`, checking minutes first."""
    return [
        v if isinstance(v, Citation) else Citation.from_dict(_check_raw_citation(v))
        for v in values or []
    ]


def validate_citations(citations: list[Citation]) -> None:
    """Every citation needs a transcript id and non-negative minutes."""
    for citation in citations:
        if not citation.transcript_id.strip():
            raise StoryValidationError("citations require transcriptId")
        if any(minute < 0 for minute in citation.minutes):
            raise StoryValidationError("citation minutes must be >= 0")


def validate_index(index: int) -> None:
    if index < 1:
        raise StoryValidationError(f"index must be >= 1, got {index}")
    if index > keys.MAX_PARAGRAPH_INDEX:
        raise StoryValidationError(
            f"index must be <= {keys.MAX_PARAGRAPH_INDEX}, got {index}"
        )


def validate_detail(kind: Optional[str], start_minute: int, end_minute: int) -> None:
    if (kind or "").strip() != DETAIL_KIND_QUOTE:
        raise StoryValidationError(f"kind must be {DETAIL_KIND_QUOTE!r}")
    if start_minute < 0 or end_minute < 0:
        raise StoryValidationError("startMinute and endMinute must be >= 0")


def get_story(store: ItemStore, story_id: str) -> Optional[Story]:
    """Fetch story metadata.  Returns ``None`` if not found."""
    item = store.get_item(keys.story_pk(story_id), keys.story_sk(story_id))
    return Story.from_item(item) if item else None


def _require_story(store: ItemStore, story_id: str) -> Story:
    story = get_story(store, story_id)
    if story is None:
        raise StoryNotFoundError(f"story not found: {story_id!r}")
    return story


def put_node_map(store: ItemStore, node_map: NodeMap) -> None:
    store.put_item(node_map.to_item())


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

def create_story(
    store: ItemStore,
    school_id: str,
    title: str,
    story_id: Optional[str] = None,
) -> Story:
    """Create a story, or overwrite the metadata of an existing one.

    Args:
        store: Item store to write to.
        school_id: Owning school; must not be blank.
        title: Display title; must not be blank.
        story_id: Explicit id (``story-<uuid4>`` is generated when omitted).

    Returns:
        The stored :class:`~backend.db.models.Story`.  Re-creating an existing
        id keeps its original ``createdAt``.

    Raises:
        StoryValidationError: If ``school_id`` or ``title`` is blank.
    """
    school_id = _require_text(school_id, "schoolId")
    title = _require_text(title, "title")
    sid = (story_id or "").strip() or keys.new_story_id()

    now = _now()
    existing = get_story(store, sid)
    story = Story(
        story_id=sid,
        school_id=school_id,
        title=title,
        created_at=existing.created_at if existing and existing.created_at else now,
        updated_at=now,
    )
    store.put_item(story.to_item())
    logger.info("story.saved", extra={"story_id": sid, "created": existing is None})
    return story


def list_stories(store: ItemStore) -> list[Story]:
    """Return every story's metadata, ordered by story id."""
    stories = [
        Story.from_item(item)
        for item in store.scan_prefix(keys.STORY_PREFIX)
        if item.get("pk") == item.get("sk")
    ]
    return sorted(stories, key=lambda s: s.story_id)


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------

def create_paragraph(
    store: ItemStore,
    story_id: str,
    index: int,
    body_md: str,
    title: Optional[str] = None,
    citations: Optional[Iterable[CitationInput]] = None,
) -> Paragraph:
    """Add a paragraph to a story.

    Not idempotent: every call creates a new paragraph id.

    Raises:
        StoryValidationError: Bad index or citation.
        StoryNotFoundError: The story does not exist.
    """
    validate_index(index)
    cits = as_citations(citations)
    validate_citations(cits)
    _require_story(store, story_id)

    now = _now()
    paragraph = Paragraph(
        paragraph_id=keys.new_paragraph_id(),
        story_id=story_id,
        index=index,
        body_md=body_md or "",
        title=(title or "").strip(),
        citations=cits,
        created_at=now,
        updated_at=now,
    )
    store.put_item(paragraph.to_item())
    logger.info(
        "paragraph.created",
        extra={"story_id": story_id, "paragraph_id": paragraph.paragraph_id, "index": index},
    )
    return paragraph


def get_paragraph(store: ItemStore, story_id: str, paragraph_id: str) -> Optional[Paragraph]:
    """Find a paragraph by id within its story.

    The sort key embeds the mutable index, so this scans the partition and
    filters in memory.  Returns ``None`` if not found.
    """
    return load_partition(store, story_id).find_paragraph(paragraph_id)


_PARAGRAPH_FIELDS = {"index", "title", "body_md", "citations"}


def update_paragraph(
    store: ItemStore,
    story_id: str,
    paragraph_id: str,
    **changes: Any,
) -> Paragraph:
    """Apply a partial update to a paragraph.

    Allowed keyword arguments: ``index``, ``title``, ``body_md``,
    ``citations``.  Fields not given keep their value; ``updatedAt`` is always
    refreshed.  When the index changes the record moves to its new sort key:
    the new item is written first, then the old one deleted.

    Raises:
        StoryValidationError: Blank story id, empty patch, unknown field, bad index or
            citation.
        StoryNotFoundError: No such paragraph in the story.
    """
    story_id = _require_text(story_id, "storyId")
    if not changes:
        raise StoryValidationError("No fields provided to update.")
    for key in changes:
        if key not in _PARAGRAPH_FIELDS:
            raise StoryValidationError(f"Cannot update field {key!r}")
    if "index" in changes:
        validate_index(changes["index"])
    if "citations" in changes:
        changes["citations"] = as_citations(changes["citations"])
        validate_citations(changes["citations"])

    paragraph = get_paragraph(store, story_id, paragraph_id)
    if paragraph is None:
        raise StoryNotFoundError(f"paragraph not found: {paragraph_id!r}")

    old_sk = paragraph.sort_key
    if "index" in changes:
        paragraph.index = changes["index"]
    if "title" in changes:
        paragraph.title = (changes["title"] or "").strip()
    if "body_md" in changes:
        paragraph.body_md = changes["body_md"] or ""
    if "citations" in changes:
        paragraph.citations = changes["citations"]
    paragraph.updated_at = _now()

    store.put_item(paragraph.to_item())
    if paragraph.sort_key != old_sk:
        store.delete_item(keys.story_pk(story_id), old_sk)
        logger.info(
            "paragraph.moved",
            extra={"paragraph_id": paragraph_id, "old_sk": old_sk, "new_sk": paragraph.sort_key},
        )
    return paragraph


# ---------------------------------------------------------------------------
# Details
# ---------------------------------------------------------------------------

def create_detail(
    store: ItemStore,
    story_id: str,
    paragraph_id: str,
    kind: str,
    transcript_id: str,
    start_minute: int,
    end_minute: int,
    text: str,
) -> Detail:
    """Attach a quote excerpt to a paragraph.

    Validation happens before any read or write, so a rejected detail leaves
    no trace.

    Raises:
        StoryValidationError: Blank story id, ``kind`` other than ``"quote"``,
            or a negative minute.
        StoryNotFoundError: The paragraph is not part of the story.
    """
    story_id = _require_text(story_id, "storyId")
    validate_detail(kind, start_minute, end_minute)
    if get_paragraph(store, story_id, paragraph_id) is None:
        raise StoryNotFoundError(f"paragraph not found: {paragraph_id!r}")

    detail = Detail(
        detail_id=keys.new_detail_id(),
        story_id=story_id,
        paragraph_id=paragraph_id,
        kind=DETAIL_KIND_QUOTE,
        transcript_id=transcript_id or "",
        start_minute=start_minute,
        end_minute=end_minute,
        text=text or "",
    )
    store.put_item(detail.to_item())
    logger.info(
        "detail.created",
        extra={"story_id": story_id, "paragraph_id": paragraph_id, "detail_id": detail.detail_id},
    )
    return detail


# ---------------------------------------------------------------------------
# Paragraph <-> node map
# ---------------------------------------------------------------------------

def validate_node_ids(node_ids: Any, where: str) -> list[str]:
    if not isinstance(node_ids, list):
        raise StoryValidationError(f"node ids for {where} must be a list, got {node_ids!r}")
    for nid in node_ids:
        if not isinstance(nid, str):
            raise StoryValidationError(f"node ids for {where} must be strings, got {nid!r}")
    return node_ids


def validate_node_map(mapping: Any, name: str) -> dict[str, list[str]]:
    """Check that *mapping* is a dict of lists of node id strings."""
    if not isinstance(mapping, dict):
        raise StoryValidationError(f"{name} must be an object, got {type(mapping).__name__}")
    for key, node_ids in mapping.items():
        validate_node_ids(node_ids, f"{name}[{key!r}]")
    return mapping


def clean_node_ids(node_ids: Iterable[str]) -> list[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    seen: list[str] = []
    for nid in node_ids:
        nid = nid.strip()
        if nid and nid not in seen:
            seen.append(nid)
    return seen


def set_paragraph_node_map(
    store: ItemStore,
    story_id: str,
    mapping: dict[str, list[str]],
) -> tuple[dict[str, list[str]], list[str]]:
    """Replace the story's paragraph-node map with *mapping*.

    Keys naming paragraphs that are not in the story are dropped.

    Returns:
        ``(stored_map, dropped_paragraph_ids)``.

    Raises:
        StoryValidationError: *mapping* is not a dict of lists of strings.
        StoryNotFoundError: The story does not exist.
    """
    validate_node_map(mapping, "paragraphNodeMap")
    partition = load_partition(store, story_id)
    partition.require_story()
    existing = {p.paragraph_id for p in partition.paragraphs}

    entries: dict[str, list[str]] = {}
    dropped: list[str] = []
    for pid, node_ids in mapping.items():
        pid = str(pid).strip()
        if pid not in existing:
            dropped.append(pid)
            continue
        entries[pid] = clean_node_ids(node_ids)

    if dropped:
        logger.warning(
            "node_map.dropped_unknown_paragraphs",
            extra={"story_id": story_id, "paragraph_ids": dropped},
        )
    put_node_map(store, NodeMap(story_id=story_id, entries=entries))
    return entries, dropped
