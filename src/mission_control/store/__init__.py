"""Row store adapter: protocol plus SQL and in-memory backends."""

from mission_control.store.base import RowStore
from mission_control.store.memory import MemoryRowStore
from mission_control.store.sql import SqlRowStore

__all__ = ["MemoryRowStore", "RowStore", "SqlRowStore"]
