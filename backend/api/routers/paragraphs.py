"""Paragraph endpoints.

Paragraphs are addressed by id alone in the URL, so both routes need the
owning ``storyId`` in the request body.

Routes
------
PATCH /api/paragraphs/{paragraph_id}            Partial update (moves on index change)
POST  /api/paragraphs/{paragraph_id}/details    Attach a quote detail
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from backend.api.errors import to_http
from backend.api.schemas import CamelModel, CitationIn, citations_payload
from backend.db.errors import StoryError
from backend.db.stories import create_detail, update_paragraph

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class ParagraphPatch(CamelModel):
    story_id: str
    index: Optional[int] = None
    title: Optional[str] = None
    body_md: Optional[str] = None
    citations: Optional[list[CitationIn]] = None


class DetailCreate(CamelModel):
    story_id: str
    kind: str
    transcript_id: str = ""
    start_minute: int = 0
    end_minute: int = 0
    text: str = ""


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.patch("/{paragraph_id}")
def update_endpoint(paragraph_id: str, body: ParagraphPatch, request: Request) -> dict[str, str]:
    """Apply only the fields present in the body."""
    store = request.app.state.store
    changes = body.model_dump(exclude_unset=True, exclude={"story_id"})
    if changes.get("index", 0) is None:
        del changes["index"]
    if "citations" in changes:
        changes["citations"] = citations_payload(body.citations) or []
    try:
        paragraph = update_paragraph(store, body.story_id, paragraph_id, **changes)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"id": paragraph.paragraph_id}


@router.post("/{paragraph_id}/details")
def create_detail_endpoint(paragraph_id: str, body: DetailCreate, request: Request) -> dict[str, str]:
    store = request.app.state.store
    try:
        detail = create_detail(
            store,
            body.story_id,
            paragraph_id,
            kind=body.kind,
            transcript_id=body.transcript_id,
            start_minute=body.start_minute,
            end_minute=body.end_minute,
            text=body.text,
        )
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"id": detail.detail_id}
