"""
Key-value store interface.

Mirrors the browser storage contract the tool was built around: string keys,
string values, get/set/remove. Implementations never raise on I/O problems;
they log and behave as if the key were absent.
"""

from __future__ import annotations

import abc as _abc


class KeyValueStore(_abc.ABC):
    """String key-value persistence."""

    @_abc.abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    @_abc.abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    @_abc.abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key. Removing a missing key is a no-op."""
        ...

    @_abc.abstractmethod
    def keys(self) -> list[str]:
        """List stored keys."""
        ...


class MemoryStore(KeyValueStore):
    """In-process store. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
