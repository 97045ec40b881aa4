"""Tests for bulk story import."""

from __future__ import annotations

from typing import Any

import pytest

from backend.db import keys
from backend.db.errors import StorageError, StoryValidationError
from backend.db.graph import submit_graph
from backend.db.importer import import_story
from backend.db.store import MemoryItemStore
from backend.db.stories import create_detail, create_paragraph, create_story
from backend.db.views import get_full_story, get_graph


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def store() -> MemoryItemStore:
    return MemoryItemStore()


def _bundle(**overrides: Any) -> dict[str, Any]:
    bundle: dict[str, Any] = {
        "story": {"storyId": "s1", "schoolId": "school-1", "title": "Imported"},
        "paragraphs": [
            {"index": 1, "title": "One", "bodyMd": "first",
             "citations": [{"transcriptId": "t1", "minutes": [1, 2]}]},
            {"index": 2, "bodyMd": "second"},
            {"index": 3, "bodyMd": "third"},
        ],
        "details": [
            {"paragraphIndex": 1, "kind": "quote", "transcriptId": "t1",
             "startMinute": 1, "endMinute": 2, "text": "q1"},
            {"paragraphIndex": 3, "kind": "quote", "transcriptId": "t2",
             "startMinute": 5, "endMinute": 6, "text": "q3"},
        ],
        "paragraphNodeMapByIndex": {"1": ["n1", "n2"], "2": ["n3"]},
    }
    bundle.update(overrides)
    return bundle


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestImport:
    def test_import_by_index(self, store) -> None:
        result = import_story(store, _bundle())
        assert result.story_id == "s1"

        full = get_full_story(store, "s1")
        assert [p.index for p in full.paragraphs] == [1, 2, 3]
        by_index = {p.index: p.paragraph_id for p in full.paragraphs}
        assert full.paragraph_node_map == {
            by_index[1]: ["n1", "n2"],
            by_index[2]: ["n3"],
        }
        assert [d.text for d in full.details_by_paragraph[by_index[1]]] == ["q1"]
        assert [d.text for d in full.details_by_paragraph[by_index[3]]] == ["q3"]
        assert full.paragraphs[0].citations[0].minutes == [1, 2]

    def test_generates_story_id(self, store) -> None:
        bundle = _bundle()
        del bundle["story"]["storyId"]
        result = import_story(store, bundle)
        assert result.story_id.startswith("story-")
        assert get_full_story(store, result.story_id).story.title == "Imported"

    def test_reimport_replaces_paragraphs_and_details(self, store) -> None:
        import_story(store, _bundle())
        old_ids = {p.paragraph_id for p in get_full_story(store, "s1").paragraphs}

        import_story(
            store,
            _bundle(paragraphs=[{"index": 1, "bodyMd": "only"}], details=[], paragraphNodeMapByIndex={}),
        )

        full = get_full_story(store, "s1")
        assert [p.body_md for p in full.paragraphs] == ["only"]
        assert full.paragraphs[0].paragraph_id not in old_ids
        assert full.details_by_paragraph == {}
        assert full.paragraph_node_map == {}
        leftovers = [
            i for i in store.query(keys.story_pk("s1")) if i["sk"].startswith(keys.DETAIL_PREFIX)
        ]
        assert leftovers == []

    def test_replaces_manually_created_content(self, store) -> None:
        create_story(store, "school-1", "Manual", story_id="s1")
        p = create_paragraph(store, "s1", 1, "manual")
        create_detail(store, "s1", p.paragraph_id, "quote", "t", 0, 0, "manual quote")
        import_story(store, _bundle())
        full = get_full_story(store, "s1")
        assert p.paragraph_id not in {x.paragraph_id for x in full.paragraphs}
        assert p.paragraph_id not in full.details_by_paragraph

    def test_preserves_created_at(self, store, monkeypatch) -> None:
        monkeypatch.setattr("backend.db.importer._now", lambda: "2024-01-01T00:00:00Z")
        import_story(store, _bundle())
        monkeypatch.setattr("backend.db.importer._now", lambda: "2024-02-01T00:00:00Z")
        import_story(store, _bundle(story={"storyId": "s1", "schoolId": "x", "title": "Renamed"}))
        story = get_full_story(store, "s1").story
        assert story.created_at == "2024-01-01T00:00:00Z"
        assert story.updated_at == "2024-02-01T00:00:00Z"
        assert story.title == "Renamed"

    def test_graph_untouched(self, store) -> None:
        import_story(store, _bundle())
        submit_graph(store, "s1", [{"id": "n1", "label": "N1"}])
        import_story(store, _bundle())
        assert [n.id for n in get_graph(store, "s1").nodes] == ["n1"]

    def test_unknown_map_index_dropped(self, store) -> None:
        result = import_story(store, _bundle(paragraphNodeMapByIndex={"1": ["n1"], "9": ["n9"], "x": ["n0"]}))
        assert sorted(result.dropped_map_indices) == ["9", "x"]
        assert list(get_full_story(store, "s1").paragraph_node_map.values()) == [["n1"]]

    def test_duplicate_index_last_wins_for_details(self, store) -> None:
        bundle = _bundle(
            paragraphs=[{"index": 1, "bodyMd": "a"}, {"index": 1, "bodyMd": "b"}],
            details=[{"paragraphIndex": 1, "kind": "quote", "text": "q"}],
            paragraphNodeMapByIndex={"1": ["n1"]},
        )
        import_story(store, bundle)
        full = get_full_story(store, "s1")
        assert len(full.paragraphs) == 2
        owner = next(p for p in full.paragraphs if p.body_md == "b")
        assert list(full.details_by_paragraph) == [owner.paragraph_id]
        assert full.paragraph_node_map == {owner.paragraph_id: ["n1"]}

    def test_empty_paragraph_list(self, store) -> None:
        import_story(store, _bundle(paragraphs=[], details=[], paragraphNodeMapByIndex={}))
        full = get_full_story(store, "s1")
        assert full.paragraphs == []


# ---------------------------------------------------------------------------
# Validation happens before any write
# ---------------------------------------------------------------------------

class TestImportValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"story": {"storyId": "s1", "schoolId": "", "title": "T"}},
            {"story": {"storyId": "s1", "schoolId": "x", "title": " "}},
            {"paragraphs": [{"index": 0, "bodyMd": "x"}]},
            {"paragraphs": [{"index": "1", "bodyMd": "x"}]},
            {"paragraphs": [{"index": 1, "citations": [{"transcriptId": "", "minutes": []}]}]},
            {"paragraphs": [{"index": 1, "citations": [{"transcriptId": "t", "minutes": [-1]}]}]},
            {"details": [{"paragraphIndex": 1, "kind": "note", "text": "x"}]},
            {"details": [{"paragraphIndex": 1, "kind": "quote", "startMinute": -1}]},
            {"details": [{"paragraphIndex": 7, "kind": "quote"}]},
            {"details": [{"paragraphIndex": 0, "kind": "quote"}]},
            {"paragraphs": [{"index": 1, "citations": [{"transcriptId": "t", "minutes": [-0.5]}]}]},
            {"paragraphs": [{"index": 1, "citations": [{"transcriptId": "t", "minutes": [1.9]}]}]},
            {"paragraphNodeMapByIndex": ["oops"]},
            {"paragraphNodeMapByIndex": {"1": "n12"}},
            {"paragraphNodeMapByIndex": {"1": ["n1", 7]}},
        ],
    )
    def test_invalid_bundle_writes_nothing(self, store, overrides) -> None:
        with pytest.raises(StoryValidationError):
            import_story(store, _bundle(**overrides))
        assert store.query(keys.story_pk("s1")) == []

    def test_invalid_reimport_keeps_previous_content(self, store) -> None:
        import_story(store, _bundle())
        before = get_full_story(store, "s1").to_dict()
        with pytest.raises(StoryValidationError):
            import_story(store, _bundle(details=[{"paragraphIndex": 2, "kind": "video"}]))
        assert get_full_story(store, "s1").to_dict() == before

    @pytest.mark.parametrize("node_map", [["oops"], {"1": "n12"}, {"2": [None]}])
    def test_malformed_map_reimport_keeps_previous_content(self, store, node_map) -> None:
        import_story(store, _bundle())
        before = get_full_story(store, "s1").to_dict()
        with pytest.raises(StoryValidationError):
            import_story(
                store,
                _bundle(paragraphs=[{"index": 1, "bodyMd": "new"}], details=[],
                        paragraphNodeMapByIndex=node_map),
            )
        assert get_full_story(store, "s1").to_dict() == before


class _FailingStore(MemoryItemStore):
    """Fails on the n-th put."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.puts = 0
        self.fail_on = fail_on

    def put_item(self, item):
        self.puts += 1
        if self.puts == self.fail_on:
            raise StorageError("disk full")
        super().put_item(item)


def test_storage_failure_propagates_with_partial_state(caplog) -> None:
    # story, 3 paragraphs, then the first detail fails
    store = _FailingStore(fail_on=5)
    with pytest.raises(StorageError):
        import_story(store, _bundle())
    full = get_full_story(store, "s1")
    assert len(full.paragraphs) == 3
    assert full.details_by_paragraph == {}
    assert any(
        r.getMessage() == "import.failed" and getattr(r, "step", None) == "details"
        for r in caplog.records
    )
