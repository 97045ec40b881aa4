"""Exceptions raised by the story/graph data layer.

``StoryValidationError`` subclasses :class:`ValueError` and
``StoryNotFoundError`` subclasses :class:`LookupError`, so callers that only
care about the broad category can keep catching the built-ins.
"""

from __future__ import annotations


class StoryError(Exception):
    """Base class for every error raised by ``backend.db``."""


class StoryValidationError(StoryError, ValueError):
    """Input rejected before anything was written."""


class StoryNotFoundError(StoryError, LookupError):
    """The targeted story, paragraph, node or edge does not exist."""


class StorageError(StoryError):
    """The backing item store failed to read or write."""
