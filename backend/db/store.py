"""Key-value item stores.

The repository functions never talk to a database directly; they receive an
:class:`ItemStore` and use five primitives on it.  Items are plain dicts of
JSON-compatible values that always carry a partition key ``pk`` and a sort
key ``sk``.  Writes are unconditional overwrites (last writer wins) and there
is no multi-item transaction.

Implementations
---------------
MemoryItemStore   dicts in process memory (tests, throwaway servers)
SQLiteItemStore   a single ``items`` table (default)
DynamoItemStore   a DynamoDB table, see ``backend.db.dynamo``
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Optional

from backend.config import settings
from backend.db.errors import StorageError

logger = logging.getLogger(__name__)

Item = dict[str, Any]


class ItemStore(ABC):
    """The storage capability the repository needs."""

    @abstractmethod
    def put_item(self, item: Item) -> None:
        """Write *item*, replacing any item with the same ``(pk, sk)``."""

    @abstractmethod
    def get_item(self, pk: str, sk: str) -> Optional[Item]:
        """Return the item at ``(pk, sk)`` or ``None``."""

    @abstractmethod
    def delete_item(self, pk: str, sk: str) -> None:
        """Remove the item at ``(pk, sk)``; a no-op when absent."""

    @abstractmethod
    def query(self, pk: str) -> list[Item]:
        """Return every item in partition *pk*, ordered by ``sk``."""

    @abstractmethod
    def scan_prefix(self, sk_prefix: str) -> list[Item]:
        """Return items across all partitions whose ``sk`` starts with *sk_prefix*."""

    def close(self) -> None:
        """Release any underlying resources."""


def _require_keys(item: Item) -> tuple[str, str]:
    pk, sk = item.get("pk"), item.get("sk")
    if not pk or not sk:
        raise StorageError("item is missing pk or sk")
    return pk, sk


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemoryItemStore(ItemStore):
    """Thread-safe in-process store.  Items are deep-copied in and out."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Item]] = {}
        self._lock = Lock()

    def put_item(self, item: Item) -> None:
        pk, sk = _require_keys(item)
        with self._lock:
            self._items.setdefault(pk, {})[sk] = copy.deepcopy(item)

    def get_item(self, pk: str, sk: str) -> Optional[Item]:
        with self._lock:
            item = self._items.get(pk, {}).get(sk)
            return copy.deepcopy(item) if item is not None else None

    def delete_item(self, pk: str, sk: str) -> None:
        with self._lock:
            bucket = self._items.get(pk)
            if bucket is None:
                return
            bucket.pop(sk, None)
            if not bucket:
                del self._items[pk]

    def query(self, pk: str) -> list[Item]:
        with self._lock:
            bucket = self._items.get(pk, {})
            return [copy.deepcopy(bucket[sk]) for sk in sorted(bucket)]

    def scan_prefix(self, sk_prefix: str) -> list[Item]:
        with self._lock:
            return [
                copy.deepcopy(item)
                for pk in sorted(self._items)
                for sk, item in sorted(self._items[pk].items())
                if sk.startswith(sk_prefix)
            ]


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteItemStore(ItemStore):
    """Items stored as JSON bodies in the ``items`` table.

    The connection must already have the schema applied (``init_db``).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def put_item(self, item: Item) -> None:
        pk, sk = _require_keys(item)
        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO items (pk, sk, body) VALUES (?, ?, ?)
                    ON CONFLICT (pk, sk) DO UPDATE SET
                        body = excluded.body,
                        written_at = unixepoch()
                    """,
                    (pk, sk, json.dumps(item)),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to write item {sk!r}: {exc}") from exc

    def get_item(self, pk: str, sk: str) -> Optional[Item]:
        try:
            row = self.conn.execute(
                "SELECT body FROM items WHERE pk = ? AND sk = ?", (pk, sk)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read item {sk!r}: {exc}") from exc
        return json.loads(row["body"]) if row else None

    def delete_item(self, pk: str, sk: str) -> None:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM items WHERE pk = ? AND sk = ?", (pk, sk))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to delete item {sk!r}: {exc}") from exc

    def query(self, pk: str) -> list[Item]:
        try:
            rows = self.conn.execute(
                "SELECT body FROM items WHERE pk = ? ORDER BY sk", (pk,)
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to query partition {pk!r}: {exc}") from exc
        return [json.loads(r["body"]) for r in rows]

    def scan_prefix(self, sk_prefix: str) -> list[Item]:
        try:
            rows = self.conn.execute(
                "SELECT body FROM items WHERE substr(sk, 1, ?) = ? ORDER BY pk, sk",
                (len(sk_prefix), sk_prefix),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to scan {sk_prefix!r}: {exc}") from exc
        return [json.loads(r["body"]) for r in rows]

    def close(self) -> None:
        self.conn.close()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def open_store(backend: Optional[str] = None) -> ItemStore:
    """Build the store selected by ``settings.storage_backend`` (or *backend*)."""
    name = (backend or settings.storage_backend).lower()
    if name == "memory":
        store: ItemStore = MemoryItemStore()
    elif name == "sqlite":
        from backend.db.connection import get_connection
        from backend.db.migrations import init_db, migrate

        conn = get_connection()
        init_db(conn)
        migrate(conn)
        store = SQLiteItemStore(conn)
    elif name == "dynamodb":
        from backend.db.dynamo import DynamoItemStore

        store = DynamoItemStore(settings.table_name, region=settings.aws_region)
    else:
        raise ValueError(f"Unknown storage backend {name!r}")
    logger.info("store.opened", extra={"backend": name})
    return store
