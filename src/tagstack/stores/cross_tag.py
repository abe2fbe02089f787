"""
Editing another tag's override layer.

Lets an administrator change records of a tag other than the active one.
Edits go straight into that tag's stored override snapshot, computed against
the tag's composed base with ancestors' stored overrides surfaced. Cached
bundles depending on the tag are invalidated after each write.

A store already open on the edited tag keeps its in-memory override layer
until it rehydrates. Register it with ``CrossTagEditor.watch`` to have it
re-read its layer after every write to its tag.
"""

from __future__ import annotations

import logging as _logging

import tagstack.fetcher as fetcher
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.storage as storage
import tagstack.stores.base as base

_logger = _logging.getLogger(__name__)

_EVENTS = models.EntityKind.EVENTS
_TIPS = models.EntityKind.TIPS


class CrossTagEditor:
    """Reads and writes any tag's stored overrides."""

    def __init__(
        self,
        client: fetcher.ConfigClient,
        scoped_storage: storage.ScopedStorage | None = None,
    ) -> None:
        resolved = scoped_storage or client.scoped_storage
        if resolved is None:
            raise ValueError("CrossTagEditor needs a ScopedStorage")
        self._client = client
        self._storage = resolved
        self._watched: list[base.OverrideStore] = []

    def watch(self, store: base.OverrideStore) -> None:
        """Reload ``store``'s overrides whenever its tag and kind are written."""
        if store not in self._watched:
            self._watched.append(store)

    async def _base_items(
        self,
        tag: str,
        kind: models.EntityKind,
        force: bool = True,
    ) -> list[overrides.Entity]:
        bundle = await self._client.fetch_composed_for_tag(
            tag, force, include_local_overrides=True
        )
        return bundle.items(kind)

    def _snapshot(self, tag: str, kind: models.EntityKind) -> overrides.OverrideSnapshot:
        return self._storage.read_snapshot(tag, kind) or overrides.OverrideSnapshot()

    def _write(self, tag: str, kind: models.EntityKind, snapshot: overrides.OverrideSnapshot) -> None:
        self._storage.write_snapshot(tag, kind, snapshot)
        self._client.invalidate_tag(tag)
        for store in self._watched:
            if store.kind is kind and store.active_tag == tag:
                store.reload_overrides()

    async def load_item_for_tag(
        self,
        tag: str,
        kind: models.EntityKind,
        item_id: str,
    ) -> overrides.Entity | None:
        """A tag's effective version of one record, or None."""
        base_items = await self._base_items(tag, kind)
        snapshot = self._snapshot(tag, kind)
        for item in overrides.compose_with_overrides(
            base_items, snapshot.overrides_by_id, snapshot.deleted_ids
        ):
            if overrides.item_id(item) == item_id:
                return item
        return None

    async def save_item_for_tag(
        self,
        tag: str,
        kind: models.EntityKind,
        item: overrides.Entity,
    ) -> None:
        """Store ``item`` in a tag's override layer and clear its tombstone."""
        key = overrides.item_id(item)
        if key is None:
            raise ValueError(f"{kind.value} record has no id")
        base_map = overrides.build_id_map(await self._base_items(tag, kind))
        snapshot = self._snapshot(tag, kind)
        self._write(
            tag,
            kind,
            overrides.OverrideSnapshot(
                overrides_by_id=overrides.upsert_override_map(
                    base_map, snapshot.overrides_by_id, [item]
                ),
                deleted_ids=overrides.ensure_id_removed(snapshot.deleted_ids, key),
                legacy_items=snapshot.legacy_items,
            ),
        )
        _logger.info("Saved %s %s for tag %s", kind.value, key, tag)

    async def delete_item_for_tag(self, tag: str, kind: models.EntityKind, item_id: str) -> None:
        """Remove a record from a tag, tombstoning it if the base has it."""
        base_map = overrides.build_id_map(await self._base_items(tag, kind, force=False))
        snapshot = self._snapshot(tag, kind)
        overrides_by_id = dict(snapshot.overrides_by_id)
        overrides_by_id.pop(item_id, None)
        deleted_ids = list(snapshot.deleted_ids)
        if item_id in base_map:
            deleted_ids = overrides.ensure_id_added(deleted_ids, item_id)
        self._write(
            tag,
            kind,
            overrides.OverrideSnapshot(
                overrides_by_id=overrides_by_id,
                deleted_ids=deleted_ids,
                legacy_items=snapshot.legacy_items,
            ),
        )
        _logger.info("Deleted %s %s for tag %s", kind.value, item_id, tag)

    def clear_item_override_for_tag(self, tag: str, kind: models.EntityKind, item_id: str) -> None:
        """Drop a tag's override and tombstone for one record."""
        snapshot = self._snapshot(tag, kind)
        overrides_by_id = dict(snapshot.overrides_by_id)
        overrides_by_id.pop(item_id, None)
        self._write(
            tag,
            kind,
            overrides.OverrideSnapshot(
                overrides_by_id=overrides_by_id,
                deleted_ids=overrides.ensure_id_removed(snapshot.deleted_ids, item_id),
                legacy_items=snapshot.legacy_items,
            ),
        )

    # Per-kind shorthands

    async def load_event_for_tag(self, tag: str, event_id: str) -> overrides.Entity | None:
        return await self.load_item_for_tag(tag, _EVENTS, event_id)

    async def save_event_for_tag(self, tag: str, event: overrides.Entity) -> None:
        await self.save_item_for_tag(tag, _EVENTS, event)

    async def delete_event_for_tag(self, tag: str, event_id: str) -> None:
        await self.delete_item_for_tag(tag, _EVENTS, event_id)

    def clear_event_override_for_tag(self, tag: str, event_id: str) -> None:
        self.clear_item_override_for_tag(tag, _EVENTS, event_id)

    async def load_tip_for_tag(self, tag: str, tip_id: str) -> overrides.Entity | None:
        return await self.load_item_for_tag(tag, _TIPS, tip_id)

    async def save_tip_for_tag(self, tag: str, tip: overrides.Entity) -> None:
        await self.save_item_for_tag(tag, _TIPS, tip)

    async def delete_tip_for_tag(self, tag: str, tip_id: str) -> None:
        await self.delete_item_for_tag(tag, _TIPS, tip_id)

    def clear_tip_override_for_tag(self, tag: str, tip_id: str) -> None:
        self.clear_item_override_for_tag(tag, _TIPS, tip_id)
