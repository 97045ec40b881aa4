"""Strukturbild CLI: entry-point for working with stories offline.

Usage:
    python cli/main.py --help

Command groups:
    db      database setup
    story   list / show / import / export stories
    graph   show / submit / validate-refs for Strukturbild graphs
    seed    load a directory of fixture bundles
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from backend.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import logging
from typing import Optional

import typer

from backend.config import settings
from backend.db import get_connection, init_db
from backend.db.migrations import migrate
from backend.db.graph import submit_graph
from backend.db.importer import import_story
from backend.observability import configure_logging
from cli.commands.graph import graph_app
from cli.commands.story import story_app
from cli.context import abort, handle_story_errors, load_json, store_session

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="strukturbild",
    help="Strukturbild stories and graphs CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL."),
) -> None:
    configure_logging(log_level)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create the item table if missing)."""
    conn = get_connection()
    init_db(conn)
    migrate(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


app.add_typer(story_app, name="story")
app.add_typer(graph_app, name="graph")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@app.command("seed")
@handle_story_errors
def seed(
    directory: Optional[Path] = typer.Argument(
        None, help="Fixture directory. Defaults to FIXTURE_DIR."
    ),
) -> None:
    """Load every import_*.json bundle, then every graph_*.json file."""
    directory = directory or settings.fixture_dir
    if directory is None:
        abort("No fixture directory given and FIXTURE_DIR is not set.")
    if not directory.is_dir():
        abort(f"Not a directory: {directory}")

    bundles = sorted(directory.glob("import_*.json"))
    graphs = sorted(directory.glob("graph_*.json"))
    if not bundles and not graphs:
        typer.echo(f"[seed] Nothing to load in {directory}")
        return

    with store_session() as store:
        for path in bundles:
            result = import_story(store, load_json(path))
            typer.echo(f"[seed] {path.name} -> {result.story_id}")
        for path in graphs:
            payload = load_json(path)
            nodes, edges = submit_graph(
                store,
                str(payload.get("storyId") or ""),
                payload.get("nodes") or [],
                payload.get("edges") or [],
            )
            typer.echo(f"[seed] {path.name} -> {len(nodes)} nodes, {len(edges)} edges")
    logger.info("seed.completed", extra={"bundles": len(bundles), "graphs": len(graphs)})


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
