"""
JSON-file backed key-value store.

All keys live in a single JSON object on disk. The file is read once on
first access and rewritten after every change.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import pathlib as _pathlib

import tagstack.storage.base as base

_logger = _logging.getLogger(__name__)


class JsonFileStore(base.KeyValueStore):
    """
    Key-value store persisted as one JSON document.

    Read and write failures are logged and otherwise ignored: a corrupt or
    unreadable file behaves like an empty store, and a failed write keeps
    the in-memory value for the rest of the process.
    """

    def __init__(self, path: _pathlib.Path) -> None:
        """Initialize with the backing file path (created on first write)."""
        self.path = path
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data

        self._data = {}
        if not self.path.exists():
            return self._data

        try:
            raw = _json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)
            return self._data

        if not isinstance(raw, dict):
            _logger.warning("Ignoring storage file %s: top level is not an object", self.path)
            return self._data

        self._data = {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}
        return self._data

    def _flush(self) -> None:
        data = self._load()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(_json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            _logger.warning("Failed to write storage file %s: %s", self.path, e)

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()

    def keys(self) -> list[str]:
        return list(self._load())
