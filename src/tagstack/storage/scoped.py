"""
Tag-scoped view over a key-value store.

Keys are namespaced as ``<prefix>:<tag>:<key>`` so every tenant keeps its own
override layer. Unlike a view bound to "whatever tag is active right now",
every call names its tag explicitly; a store switching tags can never write
one tenant's state under another tenant's key.
"""

from __future__ import annotations

import logging as _logging

import tagstack.constants as constants
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.storage.base as base

_logger = _logging.getLogger(__name__)


class ScopedStorage:
    """Per-tag access to a shared key-value store."""

    def __init__(
        self,
        store: base.KeyValueStore,
        prefix: str = constants.STORAGE_PREFIX,
    ) -> None:
        self.store = store
        self.prefix = prefix

    def scoped_key(self, tag: str, key: str) -> str:
        """Return the namespaced key for ``key`` under ``tag``."""
        return f"{self.prefix}:{tag}:{key}"

    def get_item(self, tag: str, key: str) -> str | None:
        return self.store.get_item(self.scoped_key(tag, key))

    def set_item(self, tag: str, key: str, value: str) -> None:
        self.store.set_item(self.scoped_key(tag, key), value)

    def remove_item(self, tag: str, key: str) -> None:
        self.store.remove_item(self.scoped_key(tag, key))

    def tags_with_data(self) -> list[str]:
        """List tags that have at least one scoped key stored."""
        found: list[str] = []
        marker = f"{self.prefix}:"
        for key in self.store.keys():
            if not key.startswith(marker):
                continue
            tag, sep, _ = key[len(marker) :].partition(":")
            if sep and tag not in found:
                found.append(tag)
        return found

    # =========================================================================
    # Override snapshots
    # =========================================================================

    def read_snapshot(
        self,
        tag: str,
        kind: models.EntityKind,
    ) -> overrides.OverrideSnapshot | None:
        """Read a tag's override snapshot; malformed data reads as None."""
        raw = self.get_item(tag, kind.storage_key)
        return overrides.OverrideSnapshot.loads(raw, kind.value)

    def write_snapshot(
        self,
        tag: str,
        kind: models.EntityKind,
        snapshot: overrides.OverrideSnapshot,
    ) -> None:
        """Persist a tag's override snapshot."""
        self.set_item(tag, kind.storage_key, snapshot.dumps())
        _logger.debug(
            "Stored %s overrides for tag %s (%d overrides, %d deletions)",
            kind.value,
            tag,
            len(snapshot.overrides_by_id),
            len(snapshot.deleted_ids),
        )

    def remove_snapshot(self, tag: str, kind: models.EntityKind) -> None:
        """Forget a tag's override snapshot."""
        self.remove_item(tag, kind.storage_key)

    def snapshots_by_tag(
        self,
        tags: list[str],
        kind: models.EntityKind,
    ) -> dict[str, overrides.OverrideSnapshot]:
        """Read snapshots for several tags, omitting tags with none stored."""
        result: dict[str, overrides.OverrideSnapshot] = {}
        for tag in tags:
            snapshot = self.read_snapshot(tag, kind)
            if snapshot is not None:
                result[tag] = snapshot
        return result
