"""Shared plumbing for the Strukturbild CLI commands.

Every command opens one item store (``settings.storage_backend``), does its
work, and closes it.  Data-layer errors are turned into a red ``❌`` line and
exit code 1.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Iterator

import typer

from backend.db import ItemStore, open_store
from backend.db.errors import StoryError


@contextmanager
def store_session() -> Iterator[ItemStore]:
    """Open the configured store and close it when the block exits."""
    store = open_store()
    try:
        yield store
    finally:
        store.close()


def abort(message: str) -> None:
    typer.secho(f"❌ {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def handle_story_errors(func: Callable) -> Callable:
    """Decorator for commands that call into ``backend.db``.

    Validation, not-found and storage errors abort with exit code 1.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StoryError as exc:
            abort(str(exc))

    return wrapper


def load_json(path: Path) -> Any:
    """Read a JSON document, aborting with a readable message on failure."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        abort(f"Cannot read {path}: {exc}")
    except json.JSONDecodeError as exc:
        abort(f"Invalid JSON in {path}: {exc}")
