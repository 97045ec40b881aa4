"""Storage layer tests: connection, schema, keys and the item stores.

SQLite tests use an in-memory database so they are fast, isolated and leave
nothing behind in ~/.strukturbild_data.
"""

from __future__ import annotations

import sqlite3
from typing import Generator

import pytest

from backend.db import keys
from backend.db.connection import get_connection
from backend.db.errors import StorageError, StoryValidationError
from backend.db.migrations import current_version, init_db
from backend.db.models import (
    Detail,
    GraphEdge,
    GraphNode,
    NodeMap,
    Paragraph,
    Story,
    decode_item,
)
from backend.db.store import ItemStore, MemoryItemStore, SQLiteItemStore, open_store


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request) -> Generator[ItemStore, None, None]:
    """Each store test runs against both backends."""
    if request.param == "memory":
        s: ItemStore = MemoryItemStore()
    else:
        connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
        init_db(connection)
        s = SQLiteItemStore(connection)
    yield s
    s.close()


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestInitDb:
    def test_items_table_exists(self, conn: sqlite3.Connection) -> None:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='items'"
        ).fetchone()
        assert row is not None

    def test_wal_mode(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA journal_mode").fetchone()
        # In-memory DBs always return 'memory', on-disk returns 'wal'
        assert row[0] in ("wal", "memory")

    def test_current_version_zero_on_fresh_db(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == 0

    def test_init_db_is_idempotent(self, conn: sqlite3.Connection) -> None:
        init_db(conn)

    def test_on_disk_db_created_in_workspace(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("backend.config.settings.workspace_dir", tmp_path / "ws")
        s = open_store("sqlite")
        try:
            assert (tmp_path / "ws" / "strukturbild.db").exists()
        finally:
            s.close()

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValueError):
            open_store("postgres")


# ---------------------------------------------------------------------------
# keys
# ---------------------------------------------------------------------------

class TestKeys:
    def test_paragraph_sk_is_zero_padded(self) -> None:
        assert keys.paragraph_sk(7, "para-x") == "PARA#0007#para-x"

    def test_paragraph_sk_orders_by_index_then_id(self) -> None:
        sks = [
            keys.paragraph_sk(10, "a"),
            keys.paragraph_sk(2, "b"),
            keys.paragraph_sk(2, "a"),
        ]
        assert sorted(sks) == [
            keys.paragraph_sk(2, "a"),
            keys.paragraph_sk(2, "b"),
            keys.paragraph_sk(10, "a"),
        ]

    @pytest.mark.parametrize("index", [0, -1, 10000])
    def test_paragraph_sk_rejects_out_of_range(self, index: int) -> None:
        with pytest.raises(StoryValidationError):
            keys.paragraph_sk(index, "p")

    def test_detail_and_map_keys(self) -> None:
        assert keys.detail_sk("p1", "d1") == "DET#p1#d1"
        assert keys.node_map_sk("s1") == "PMAP#s1"
        assert keys.story_pk("s1") == keys.story_sk("s1") == "STORY#s1"

    def test_edge_id_derived_from_endpoints(self) -> None:
        assert keys.edge_id("a", "b") == "a|b"

    @pytest.mark.parametrize("bad", ["STORY#x", "PARA#0001#p", "DET#p#d", "PMAP#s"])
    def test_reserved_graph_ids_rejected(self, bad: str) -> None:
        with pytest.raises(StoryValidationError):
            keys.check_graph_id(bad)

    def test_generated_ids_have_prefixes(self) -> None:
        assert keys.new_story_id().startswith("story-")
        assert keys.new_paragraph_id().startswith("para-")
        assert keys.new_detail_id().startswith("det-")
        assert keys.new_node_id() != keys.new_node_id()


# ---------------------------------------------------------------------------
# item stores
# ---------------------------------------------------------------------------

class TestItemStore:
    def test_put_get(self, store: ItemStore) -> None:
        store.put_item({"pk": "P", "sk": "a", "value": 1})
        assert store.get_item("P", "a") == {"pk": "P", "sk": "a", "value": 1}

    def test_get_missing_returns_none(self, store: ItemStore) -> None:
        assert store.get_item("P", "nope") is None

    def test_put_overwrites(self, store: ItemStore) -> None:
        store.put_item({"pk": "P", "sk": "a", "value": 1})
        store.put_item({"pk": "P", "sk": "a", "value": 2})
        assert store.get_item("P", "a")["value"] == 2
        assert len(store.query("P")) == 1

    def test_delete_and_delete_missing(self, store: ItemStore) -> None:
        store.put_item({"pk": "P", "sk": "a"})
        store.delete_item("P", "a")
        store.delete_item("P", "a")
        assert store.get_item("P", "a") is None

    def test_query_sorted_by_sk_and_scoped_to_partition(self, store: ItemStore) -> None:
        for sk in ("c", "a", "b"):
            store.put_item({"pk": "P", "sk": sk})
        store.put_item({"pk": "Q", "sk": "a"})
        assert [i["sk"] for i in store.query("P")] == ["a", "b", "c"]

    def test_scan_prefix_crosses_partitions(self, store: ItemStore) -> None:
        store.put_item({"pk": "STORY#1", "sk": "STORY#1"})
        store.put_item({"pk": "STORY#2", "sk": "STORY#2"})
        store.put_item({"pk": "STORY#1", "sk": "PARA#0001#p"})
        found = store.scan_prefix("STORY#")
        assert [i["pk"] for i in found] == ["STORY#1", "STORY#2"]

    def test_missing_keys_rejected(self, store: ItemStore) -> None:
        with pytest.raises(StorageError):
            store.put_item({"pk": "P"})

    def test_returned_items_are_copies(self, store: ItemStore) -> None:
        store.put_item({"pk": "P", "sk": "a", "tags": ["x"]})
        item = store.get_item("P", "a")
        item["tags"].append("y")
        assert store.get_item("P", "a")["tags"] == ["x"]


class TestSQLiteErrors:
    def test_closed_connection_raises_storage_error(self) -> None:
        connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
        init_db(connection)
        s = SQLiteItemStore(connection)
        connection.close()
        with pytest.raises(StorageError):
            s.get_item("P", "a")


# ---------------------------------------------------------------------------
# record decoding
# ---------------------------------------------------------------------------

class TestDecodeItem:
    def test_each_record_roundtrips_through_its_item(self) -> None:
        records = [
            Story("s1", "school", "T", "2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z"),
            Paragraph("p1", "s1", 1, "body"),
            Detail("d1", "s1", "p1", "quote", "t1", 1, 2, "hi"),
            NodeMap("s1", {"p1": ["n1"]}),
            GraphNode(id="n1", label="N", story_id="s1", x=3, y=4, type="person"),
            GraphEdge(id="n1|n2", source="n1", target="n2", story_id="s1", label="knows"),
        ]
        for record in records:
            assert decode_item(record.to_item()) == record

    def test_detail_kind_does_not_confuse_decoder(self) -> None:
        item = Detail("d1", "s1", "p1", "quote", "t1", 0, 0, "").to_item()
        assert isinstance(decode_item(item), Detail)

    def test_legacy_items_decoded_by_is_node_flag(self) -> None:
        node = {"pk": "STORY#s1", "sk": "n1", "id": "n1", "label": "A", "isNode": True}
        edge = {"pk": "STORY#s1", "sk": "e1", "from": "n1", "to": "n2", "isNode": False}
        assert isinstance(decode_item(node), GraphNode)
        decoded = decode_item(edge)
        assert isinstance(decoded, GraphEdge)
        assert decoded.id == "e1"

    def test_legacy_items_decoded_by_sort_key(self) -> None:
        item = {"pk": "STORY#s1", "sk": "PARA#0002#p9", "paragraphId": "p9", "index": 2}
        paragraph = decode_item(item)
        assert isinstance(paragraph, Paragraph)
        assert paragraph.index == 2

    def test_unknown_item_is_skipped(self) -> None:
        assert decode_item({"pk": "STORY#s1", "sk": "mystery"}) is None
