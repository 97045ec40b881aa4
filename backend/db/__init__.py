"""Database layer package.

Public re-exports so callers can write::

    from backend.db import open_store, stories, graph
"""

from backend.db.connection import get_connection
from backend.db.migrations import init_db
from backend.db.store import ItemStore, MemoryItemStore, SQLiteItemStore, open_store
from backend.db import graph, importer, stories, views

__all__ = [
    "get_connection",
    "init_db",
    "ItemStore",
    "MemoryItemStore",
    "SQLiteItemStore",
    "open_store",
    "graph",
    "importer",
    "stories",
    "views",
]
