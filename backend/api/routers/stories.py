"""Story endpoints.

Routes
------
GET  /api/stories                                   List story metadata
POST /api/stories                                   Create (or overwrite) a story
POST /api/stories/import                            Replace a story from an import bundle
POST /api/stories/{story_id}/paragraphs             Add a paragraph
PUT  /api/stories/{story_id}/paragraph-node-map     Replace the paragraph-node map
GET  /api/stories/{story_id}/full                   Full story view
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import Field

from backend.api.errors import to_http
from backend.api.schemas import CamelModel, CitationIn, citations_payload
from backend.db.errors import StoryError
from backend.db.importer import import_story
from backend.db.stories import create_paragraph, create_story, list_stories, set_paragraph_node_map
from backend.db.views import get_full_story

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class StoryCreate(CamelModel):
    school_id: str
    title: str
    story_id: Optional[str] = None


class ParagraphCreate(CamelModel):
    index: int
    body_md: str = ""
    title: Optional[str] = None
    citations: list[CitationIn] = Field(default_factory=list)


class NodeMapUpdate(CamelModel):
    paragraph_node_map: dict[str, list[str]] = Field(default_factory=dict)


class ImportStoryIn(CamelModel):
    story_id: Optional[str] = None
    school_id: str = ""
    title: str = ""


class ImportParagraphIn(CamelModel):
    index: int
    title: Optional[str] = None
    body_md: str = ""
    citations: list[CitationIn] = Field(default_factory=list)


class ImportDetailIn(CamelModel):
    paragraph_index: int
    kind: str
    transcript_id: str = ""
    start_minute: int = 0
    end_minute: int = 0
    text: str = ""


class ImportBundle(CamelModel):
    story: ImportStoryIn
    paragraphs: list[ImportParagraphIn] = Field(default_factory=list)
    details: list[ImportDetailIn] = Field(default_factory=list)
    paragraph_node_map_by_index: dict[str, list[str]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
def list_endpoint(request: Request) -> dict[str, Any]:
    """Return every story's metadata ordered by id."""
    store = request.app.state.store
    try:
        stories = list_stories(store)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"stories": [s.to_dict() for s in stories]}


@router.post("")
def create_endpoint(body: StoryCreate, request: Request) -> dict[str, str]:
    store = request.app.state.store
    try:
        story = create_story(store, body.school_id, body.title, story_id=body.story_id)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"id": story.story_id}


@router.post("/import")
def import_endpoint(body: ImportBundle, request: Request) -> dict[str, str]:
    """Replace a story's paragraphs, details and node map from a bundle."""
    store = request.app.state.store
    try:
        result = import_story(store, body.model_dump(by_alias=True))
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"id": result.story_id}


@router.post("/{story_id}/paragraphs")
def create_paragraph_endpoint(story_id: str, body: ParagraphCreate, request: Request) -> dict[str, str]:
    store = request.app.state.store
    try:
        paragraph = create_paragraph(
            store,
            story_id,
            index=body.index,
            body_md=body.body_md,
            title=body.title,
            citations=citations_payload(body.citations),
        )
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"id": paragraph.paragraph_id}


@router.put("/{story_id}/paragraph-node-map")
def node_map_endpoint(story_id: str, body: NodeMapUpdate, request: Request) -> dict[str, Any]:
    """Replace the map; keys that are not paragraphs of the story are dropped."""
    store = request.app.state.store
    try:
        entries, dropped = set_paragraph_node_map(store, story_id, body.paragraph_node_map)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"paragraphNodeMap": entries, "dropped": dropped}


@router.get("/{story_id}/full")
def full_endpoint(story_id: str, request: Request) -> dict[str, Any]:
    """Story metadata, ordered paragraphs, details grouped by paragraph, node map."""
    store = request.app.state.store
    try:
        full = get_full_story(store, story_id)
    except StoryError as exc:
        raise to_http(exc) from exc
    return full.to_dict()
