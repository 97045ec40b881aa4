"""Translate data-layer exceptions into HTTP errors.

Every router catches :class:`~backend.db.errors.StoryError` and re-raises
``to_http(exc)``, so the response body is FastAPI's usual
``{"detail": "<message>"}``.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException

from backend.db.errors import StorageError, StoryError, StoryNotFoundError, StoryValidationError

logger = logging.getLogger(__name__)


def to_http(exc: StoryError) -> HTTPException:
    if isinstance(exc, StoryValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StoryNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StorageError):
        logger.error("api.storage_error", extra={"error": str(exc)})
        return HTTPException(status_code=500, detail="storage failure")
    return HTTPException(status_code=500, detail=str(exc))
