"""Tests for full-story assembly: ordering, grouping and map filtering."""

from __future__ import annotations

import pytest

from backend.db import keys
from backend.db.errors import StoryNotFoundError
from backend.db.models import Detail, NodeMap, Paragraph
from backend.db.store import MemoryItemStore
from backend.db.stories import create_story
from backend.db.views import dangling_refs, get_full_story, load_partition, ordered_paragraphs


@pytest.fixture()
def store() -> MemoryItemStore:
    s = MemoryItemStore()
    create_story(s, "school-1", "Views", story_id="s1")
    return s


def _put_paragraph(store, pid: str, index: int) -> None:
    store.put_item(Paragraph(pid, "s1", index, f"body {pid}").to_item())


class TestOrdering:
    def test_sorted_by_index_then_id(self, store) -> None:
        _put_paragraph(store, "para-b", 2)
        _put_paragraph(store, "para-a", 2)
        _put_paragraph(store, "para-z", 1)
        _put_paragraph(store, "para-c", 10)
        full = get_full_story(store, "s1")
        assert [p.paragraph_id for p in full.paragraphs] == ["para-z", "para-a", "para-b", "para-c"]

    def test_ordering_independent_of_storage_order(self) -> None:
        ps = [Paragraph("b", "s1", 1, ""), Paragraph("a", "s1", 1, ""), Paragraph("c", "s1", 0, "")]
        assert [p.paragraph_id for p in ordered_paragraphs(ps)] == ["c", "a", "b"]


class TestFullStory:
    def test_empty_story(self, store) -> None:
        data = get_full_story(store, "s1").to_dict()
        assert data["story"]["storyId"] == "s1"
        assert data["paragraphs"] == []
        assert data["detailsByParagraph"] == {}
        assert data["paragraphNodeMap"] == {}

    def test_details_grouped_per_paragraph(self, store) -> None:
        _put_paragraph(store, "p1", 1)
        _put_paragraph(store, "p2", 2)
        for did, pid in (("d2", "p1"), ("d1", "p1"), ("d3", "p2")):
            store.put_item(Detail(did, "s1", pid, "quote", "t", 0, 1, did).to_item())
        grouped = get_full_story(store, "s1").details_by_paragraph
        assert {pid: [d.detail_id for d in ds] for pid, ds in grouped.items()} == {
            "p1": ["d1", "d2"],
            "p2": ["d3"],
        }

    def test_stale_map_keys_filtered_on_read(self, store) -> None:
        _put_paragraph(store, "p1", 1)
        store.put_item(NodeMap("s1", {"p1": ["n1"], "gone": ["n2"]}).to_item())
        assert get_full_story(store, "s1").paragraph_node_map == {"p1": ["n1"]}

    def test_orphans_without_metadata_are_not_found(self) -> None:
        s = MemoryItemStore()
        s.put_item(Paragraph("p1", "orphan", 1, "x").to_item())
        with pytest.raises(StoryNotFoundError):
            get_full_story(s, "orphan")

    def test_single_partition_query(self, store, monkeypatch) -> None:
        calls = []
        original = store.query
        monkeypatch.setattr(store, "query", lambda pk: calls.append(pk) or original(pk))
        get_full_story(store, "s1")
        assert calls == [keys.story_pk("s1")]


class TestPartition:
    def test_unrecognised_items_ignored(self, store) -> None:
        store.put_item({"pk": keys.story_pk("s1"), "sk": "weird"})
        partition = load_partition(store, "s1")
        assert partition.story is not None
        assert partition.nodes == [] and partition.edges == []


def test_dangling_refs_map_entries() -> None:
    report = dangling_refs([], [], {"p1": ["n1"]})
    assert report.node_map == {"p1": ["n1"]}
    assert not report.ok
    assert dangling_refs([], []).ok
