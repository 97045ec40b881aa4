"""Storage key construction.

Every record of a story lives in one partition (``pk``) so a single range
query returns the whole story.  Sort keys (``sk``) encode the record kind:

    STORY#<storyId>                      story metadata
    PARA#<index:04d>#<paragraphId>       paragraph, ordered by index then id
    DET#<paragraphId>#<detailId>         quote detail, grouped per paragraph
    PMAP#<storyId>                       paragraph -> node id map
    <id>                                 graph node or edge (unprefixed)

Graph elements are told apart from narrative records by the ``recordKind`` /
``isNode`` attributes, not by key shape.
"""

from __future__ import annotations

import uuid

from backend.db.errors import StoryValidationError

STORY_PREFIX = "STORY#"
PARAGRAPH_PREFIX = "PARA#"
DETAIL_PREFIX = "DET#"
NODE_MAP_PREFIX = "PMAP#"

RESERVED_PREFIXES = (STORY_PREFIX, PARAGRAPH_PREFIX, DETAIL_PREFIX, NODE_MAP_PREFIX)

# Zero-padding width of the paragraph index inside its sort key.
INDEX_WIDTH = 4
MAX_PARAGRAPH_INDEX = 10**INDEX_WIDTH - 1


def story_pk(story_id: str) -> str:
    return f"{STORY_PREFIX}{story_id}"


def story_sk(story_id: str) -> str:
    return f"{STORY_PREFIX}{story_id}"


def paragraph_sk(index: int, paragraph_id: str) -> str:
    """Sort key for a paragraph; lexicographic order equals ``(index, id)``."""
    if index < 1 or index > MAX_PARAGRAPH_INDEX:
        raise StoryValidationError(
            f"index must be between 1 and {MAX_PARAGRAPH_INDEX}, got {index}"
        )
    return f"{PARAGRAPH_PREFIX}{index:0{INDEX_WIDTH}d}#{paragraph_id}"


def detail_sk(paragraph_id: str, detail_id: str) -> str:
    return f"{DETAIL_PREFIX}{paragraph_id}#{detail_id}"


def node_map_sk(story_id: str) -> str:
    return f"{NODE_MAP_PREFIX}{story_id}"


def edge_id(source: str, target: str) -> str:
    """Derived id for an edge submitted without one.

    Re-submitting the same ``(from, to)`` pair therefore upserts.
    """
    return f"{source}|{target}"


def check_graph_id(element_id: str) -> str:
    """Reject graph ids that would collide with narrative sort keys."""
    if element_id.startswith(RESERVED_PREFIXES):
        raise StoryValidationError(
            f"graph element id {element_id!r} uses a reserved prefix"
        )
    return element_id


# ---------------------------------------------------------------------------
# Id generation
# ---------------------------------------------------------------------------

def new_story_id() -> str:
    return f"story-{uuid.uuid4()}"


def new_paragraph_id() -> str:
    return f"para-{uuid.uuid4()}"


def new_detail_id() -> str:
    return f"det-{uuid.uuid4()}"


def new_node_id() -> str:
    return str(uuid.uuid4())
