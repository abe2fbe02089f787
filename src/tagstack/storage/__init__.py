"""
Local persistence for tagstack.

A string key-value store (in memory or a JSON file on disk) plus a
tag-scoped view used for per-tenant override snapshots.
"""

from tagstack.storage.base import KeyValueStore, MemoryStore
from tagstack.storage.file_store import JsonFileStore
from tagstack.storage.scoped import ScopedStorage

__all__ = ["JsonFileStore", "KeyValueStore", "MemoryStore", "ScopedStorage"]
