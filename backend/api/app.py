"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging and opens one item store (selected by
``settings.storage_backend``), shared across all requests via
``request.app.state.store``.  On shutdown it closes the store.

Routers
-------
    /api/health       liveness probe
    /api/stories      story, paragraph creation, import, full view
    /api/paragraphs   paragraph patch and quote details
    /submit, /struktur  Strukturbild graph editing
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.db import open_store
from backend.observability import configure_logging

from backend.api.routers import health as health_router
from backend.api.routers import paragraphs as paragraphs_router
from backend.api.routers import stories as stories_router
from backend.api.routers import struktur as struktur_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and close it on shutdown."""
    configure_logging()
    store = open_store()
    app.state.store = store
    try:
        yield
    finally:
        store.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Strukturbild API",
        description=(
            "Stories, paragraphs and quote details for school history projects, "
            "and the Strukturbild graph of nodes and edges linked to them."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # The story editor and graph canvas are served from other origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router.router, prefix="/api", tags=["health"])
    app.include_router(stories_router.router, prefix="/api/stories", tags=["stories"])
    app.include_router(paragraphs_router.router, prefix="/api/paragraphs", tags=["paragraphs"])
    app.include_router(struktur_router.router, tags=["struktur"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn backend.api.app:app --reload
app = create_app()
