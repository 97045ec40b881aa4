"""Story commands: list, show, import and export."""

import json
from pathlib import Path
from typing import Optional

import typer

from backend.db.importer import import_story
from backend.db.stories import list_stories
from backend.db.views import get_full_story
from cli.context import handle_story_errors, load_json, store_session
from cli.rendering import render_story

story_app = typer.Typer(help="Inspect, import and export stories.", no_args_is_help=True)


@story_app.command("list")
@handle_story_errors
def story_list() -> None:
    """List all stories."""
    with store_session() as store:
        stories = list_stories(store)
    if not stories:
        typer.echo("No stories found.")
        return
    typer.echo("Stories:")
    for s in stories:
        typer.echo(f"  {s.title} \t[{s.story_id}]  school={s.school_id}")


@story_app.command("show")
@handle_story_errors
def story_show(
    story_id: str = typer.Argument(..., help="Story id."),
    as_json: bool = typer.Option(False, "--json", help="Print the full view as JSON."),
) -> None:
    """Show a story's paragraphs and quote details."""
    with store_session() as store:
        full = get_full_story(store, story_id)
    if as_json:
        typer.echo(json.dumps(full.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(render_story(full))


@story_app.command("import")
@handle_story_errors
def story_import(
    path: Path = typer.Argument(..., help="Import bundle (JSON)."),
) -> None:
    """Replace a story's paragraphs, details and node map from a bundle."""
    bundle = load_json(path)
    with store_session() as store:
        result = import_story(store, bundle)
    typer.echo(
        f"✅ Imported {result.story_id}: {len(result.paragraph_ids)} paragraphs, "
        f"{result.detail_count} details"
    )
    if result.dropped_map_indices:
        typer.echo(f"⚠️  Dropped map entries for unknown indices: {', '.join(result.dropped_map_indices)}")


@story_app.command("export")
@handle_story_errors
def story_export(
    story_id: str = typer.Argument(..., help="Story id."),
    output: Optional[Path] = typer.Option(None, help="Output file. Defaults to <story_id>.json"),
) -> None:
    """Write the story as an import bundle that ``story import`` accepts."""
    with store_session() as store:
        full = get_full_story(store, story_id)

    index_of = {p.paragraph_id: p.index for p in full.paragraphs}
    bundle = {
        "story": {
            "storyId": full.story.story_id,
            "schoolId": full.story.school_id,
            "title": full.story.title,
        },
        "paragraphs": [
            {
                "index": p.index,
                "title": p.title,
                "bodyMd": p.body_md,
                "citations": [c.to_dict() for c in p.citations],
            }
            for p in full.paragraphs
        ],
        "details": [
            {
                "paragraphIndex": index_of[pid],
                "kind": d.kind,
                "transcriptId": d.transcript_id,
                "startMinute": d.start_minute,
                "endMinute": d.end_minute,
                "text": d.text,
            }
            for pid, details in full.details_by_paragraph.items()
            if pid in index_of
            for d in details
        ],
        "paragraphNodeMapByIndex": {
            str(index_of[pid]): ids for pid, ids in full.paragraph_node_map.items()
        },
    }

    output = output or Path(f"{story_id}.json")
    output.write_text(json.dumps(bundle, indent=2, ensure_ascii=False), encoding="utf-8")
    typer.echo(f"✅ Exported to {output.absolute()}")
