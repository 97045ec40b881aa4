"""Strukturbild graph endpoints.

These keep the paths the graph editor has always used.

Routes
------
POST   /submit                               Upsert nodes and edges
GET    /struktur/{story_id}                  Graph view
DELETE /struktur/{story_id}/edges/{edge_id}  Delete one edge
DELETE /struktur/{story_id}/{node_id}        Delete a node and its edges
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import Field

from backend.api.errors import to_http
from backend.api.schemas import CamelModel
from backend.db.errors import StoryError
from backend.db.graph import delete_edge, delete_node, submit_graph
from backend.db.views import get_graph

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class NodeIn(CamelModel):
    id: Optional[str] = None
    label: Optional[str] = None
    detail: Optional[str] = None
    type: Optional[str] = None
    time: Optional[str] = None
    color: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None


class EdgeIn(CamelModel):
    id: Optional[str] = None
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: Optional[str] = None
    detail: Optional[str] = None
    type: Optional[str] = None


class GraphSubmit(CamelModel):
    story_id: str
    nodes: list[NodeIn] = Field(default_factory=list)
    edges: list[EdgeIn] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/submit")
def submit_endpoint(body: GraphSubmit, request: Request) -> dict[str, str]:
    """Upsert the submitted nodes and edges.  Edge endpoints are not checked."""
    if not body.story_id.strip():
        raise HTTPException(status_code=400, detail="storyId is required")
    store = request.app.state.store
    try:
        submit_graph(
            store,
            body.story_id,
            nodes=[n.model_dump(by_alias=True, exclude_none=True) for n in body.nodes],
            edges=[e.model_dump(by_alias=True, exclude_none=True) for e in body.edges],
        )
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"status": "ok", "storyId": body.story_id}


@router.get("/struktur/{story_id}")
def graph_endpoint(story_id: str, request: Request) -> dict[str, Any]:
    store = request.app.state.store
    try:
        graph = get_graph(store, story_id)
    except StoryError as exc:
        raise to_http(exc) from exc
    return graph.to_dict()


@router.delete("/struktur/{story_id}/edges/{edge_id}")
def delete_edge_endpoint(story_id: str, edge_id: str, request: Request) -> dict[str, str]:
    store = request.app.state.store
    try:
        delete_edge(store, story_id, edge_id)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"status": "deleted"}


@router.delete("/struktur/{story_id}/{node_id}")
def delete_node_endpoint(story_id: str, node_id: str, request: Request) -> dict[str, str]:
    """Delete a node together with its edges and paragraph-map entries."""
    store = request.app.state.store
    try:
        delete_node(store, story_id, node_id)
    except StoryError as exc:
        raise to_http(exc) from exc
    return {"status": "deleted"}
