"""
Per-tag local store shared by events and tips.

A store holds one tenant's view of one entity kind:

- ``base_items``: the composed bundle's records (what the tag publishes,
  inherited fields included)
- ``overrides_by_id`` / ``deleted_ids``: local edits on top of the base
- ``items``: base plus local edits, recomputed after every mutation

Only the override layer is persisted (per tag, via ScopedStorage). A fresh
base from a config republish therefore shows through automatically while
local edits survive.

Tag switches run as ``reset -> rehydrate -> initialize_from_config``. Each
switch bumps a generation number; an initialization started under an older
generation never applies its result.
"""

from __future__ import annotations

import asyncio as _asyncio
import collections.abc as _abc
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import tagstack.diff as diff
import tagstack.fetcher as fetcher
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.storage as storage
import tagstack.utils as utils

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class StoreState:
    """Everything a store knows about its active tag."""

    active_tag: str
    items: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    base_items: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    base_map: overrides.OverrideMap = _dataclasses.field(default_factory=dict)
    overrides_by_id: overrides.OverrideMap = _dataclasses.field(default_factory=dict)
    deleted_ids: list[str] = _dataclasses.field(default_factory=list)
    legacy_items: list[overrides.Entity] | None = None
    initialized: bool = False
    hydrated: bool = False
    search_term: str = ""
    filtered: list[overrides.Entity] = _dataclasses.field(default_factory=list)

    def snapshot(self) -> overrides.OverrideSnapshot:
        """The persisted part of the state."""
        return overrides.OverrideSnapshot(
            overrides_by_id=dict(self.overrides_by_id),
            deleted_ids=list(self.deleted_ids),
            legacy_items=self.legacy_items,
        )


class OverrideStore:
    """
    Base class for the events and tips stores.

    Subclasses set ``kind`` and ``search_fields``.
    """

    kind: _typing.ClassVar[models.EntityKind]
    search_fields: _typing.ClassVar[tuple[str, ...]] = ("title",)

    def __init__(
        self,
        client: fetcher.ConfigClient,
        scoped_storage: storage.ScopedStorage | None = None,
        *,
        tag: str | None = None,
        follow_active_tag: bool = True,
    ) -> None:
        """
        Initialize the store and rehydrate the tag's stored overrides.

        Args:
            client: Config client supplying composed bundles.
            scoped_storage: Where override snapshots are kept. Defaults to
                the client's storage, or an in-memory store.
            tag: Tag to start on. Defaults to the resolver's active tag.
            follow_active_tag: Switch tags whenever the resolver's active
                tag changes.
        """
        self._client = client
        self._storage = (
            scoped_storage
            or client.scoped_storage
            or storage.ScopedStorage(storage.MemoryStore())
        )
        self._state = StoreState(active_tag=tag or client.resolver.get_active_tag())
        self._generation = 0
        self._pending: _asyncio.Task[None] | None = None
        self._unsubscribe: _typing.Callable[[], None] | None = None

        self._load_snapshot()
        if follow_active_tag:
            self._unsubscribe = client.resolver.on_tag_change(self._on_tag_change)

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def active_tag(self) -> str:
        return self._state.active_tag

    @property
    def items(self) -> list[overrides.Entity]:
        return self._state.items

    @property
    def filtered(self) -> list[overrides.Entity]:
        return self._state.filtered

    @property
    def base_items(self) -> list[overrides.Entity]:
        return self._state.base_items

    @property
    def overrides_by_id(self) -> overrides.OverrideMap:
        return self._state.overrides_by_id

    @property
    def deleted_ids(self) -> list[str]:
        return self._state.deleted_ids

    @property
    def legacy_items(self) -> list[overrides.Entity] | None:
        return self._state.legacy_items

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    @property
    def hydrated(self) -> bool:
        return self._state.hydrated

    @property
    def search_term(self) -> str:
        return self._state.search_term

    def get_item(self, item_id: str) -> overrides.Entity | None:
        for item in self._state.items:
            if overrides.item_id(item) == item_id:
                return item
        return None

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _recompose(self) -> None:
        state = self._state
        state.items = overrides.compose_with_overrides(
            state.base_items, state.overrides_by_id, state.deleted_ids
        )
        state.filtered = utils.filter_items(state.items, state.search_term, self.search_fields)

    def _persist(self) -> None:
        snapshot = self._state.snapshot()
        if snapshot.is_empty():
            self._storage.remove_snapshot(self.active_tag, self.kind)
        else:
            self._storage.write_snapshot(self.active_tag, self.kind, snapshot)

    def _load_snapshot(self) -> None:
        state = self._state
        snapshot = self._storage.read_snapshot(state.active_tag, self.kind)
        if snapshot is not None:
            state.overrides_by_id = dict(snapshot.overrides_by_id)
            state.deleted_ids = list(snapshot.deleted_ids)
            state.legacy_items = snapshot.legacy_items
            if state.legacy_items is not None and state.base_map:
                self._reconcile_legacy()
        else:
            state.overrides_by_id = {}
            state.deleted_ids = []
            state.legacy_items = None
        state.hydrated = True
        self._recompose()

    def _reconcile_legacy(self) -> None:
        state = self._state
        derived = overrides.reconcile_legacy_final_items(state.legacy_items, state.base_map)
        state.overrides_by_id = derived.overrides_by_id
        state.deleted_ids = derived.deleted_ids
        state.legacy_items = None
        _logger.info(
            "Reconciled legacy %s for tag %s (%d overrides, %d deletions)",
            self.kind.value,
            state.active_tag,
            len(state.overrides_by_id),
            len(state.deleted_ids),
        )

    def _commit(self) -> None:
        self._recompose()
        self._persist()

    def _update_one(
        self,
        item_id: str,
        change: _typing.Callable[[overrides.Entity], overrides.Entity],
    ) -> bool:
        current = self.get_item(item_id)
        if current is None:
            _logger.debug("No %s record %s in tag %s", self.kind.value, item_id, self.active_tag)
            return False
        self.update_item(change(overrides.clone_item(current)))
        return True

    # =========================================================================
    # Mutations
    # =========================================================================

    def set_search_term(self, term: str) -> None:
        self._state.search_term = term
        self._state.filtered = utils.filter_items(self._state.items, term, self.search_fields)

    def set_items(self, items: _abc.Sequence[overrides.Entity], *, from_base: bool = False) -> None:
        """
        Replace the store's records.

        Args:
            items: With ``from_base``, a freshly fetched base layer: pending
                legacy data is reconciled against it and local edits are
                kept. Otherwise, a complete final list (e.g. an import):
                overrides and deletions are re-derived from scratch.
            from_base: See ``items``.
        """
        state = self._state
        if from_base:
            state.base_items = [overrides.clone_item(item) for item in items]
            state.base_map = overrides.build_id_map(state.base_items)
            if state.legacy_items is not None:
                self._reconcile_legacy()
                self._persist()
            self._recompose()
            return

        derived = overrides.derive_overrides_from_final(list(items), state.base_map)
        state.overrides_by_id = derived.overrides_by_id
        state.deleted_ids = derived.deleted_ids
        state.legacy_items = None
        self._commit()

    def add_item(self, item: overrides.Entity) -> None:
        """Add a record (or replace one with the same id)."""
        key = overrides.item_id(item)
        if key is None:
            raise ValueError(f"{self.kind.value} record has no id")
        state = self._state
        state.overrides_by_id = overrides.upsert_override_map(
            state.base_map, state.overrides_by_id, [item]
        )
        state.deleted_ids = overrides.ensure_id_removed(state.deleted_ids, key)
        self._commit()

    def update_item(self, item: overrides.Entity) -> None:
        """Store a changed record; a record equal to its base drops its override."""
        self.add_item(item)

    def delete_item(self, item_id: str) -> None:
        """
        Remove a record.

        Base records get a tombstone; records that only exist locally are
        simply dropped from the override map.
        """
        state = self._state
        overrides_by_id = dict(state.overrides_by_id)
        overrides_by_id.pop(item_id, None)
        state.overrides_by_id = overrides_by_id
        if item_id in state.base_map:
            state.deleted_ids = overrides.ensure_id_added(state.deleted_ids, item_id)
        self._commit()

    def delete_all(self) -> None:
        """Tombstone every base record and drop all overrides."""
        state = self._state
        state.overrides_by_id = {}
        state.deleted_ids = list(state.base_map)
        state.legacy_items = None
        state.initialized = True
        self._commit()

    async def reset_to_defaults(self) -> None:
        """Discard the local override layer and reload the base."""
        state = self._state
        state.overrides_by_id = {}
        state.deleted_ids = []
        state.legacy_items = None
        state.initialized = False
        self._commit()
        await self.initialize_from_config(force_refresh=True)

    async def reset_item_overrides(self, item_id: str) -> bool:
        """
        Replace one record with its parent chain's version.

        Returns:
            False if the parent chain has no such record (nothing to reset).
        """
        parent_item = await diff.fetch_parent_item(self._client, self.active_tag, self.kind, item_id)
        if parent_item is None:
            _logger.info(
                "No parent version of %s %s for tag %s", self.kind.value, item_id, self.active_tag
            )
            return False
        self.update_item(parent_item)
        return True

    # =========================================================================
    # Loading and tag switches
    # =========================================================================

    async def initialize_from_config(self, force_refresh: bool = False) -> None:
        """
        Load the composed bundle as the new base.

        Skipped when already initialized with data, unless forced. A result
        that arrives after a tag switch is discarded, and so is an empty
        bundle (nothing loaded): the current base and any pending legacy
        data stay as they are and the store stays uninitialized.
        """
        state = self._state
        if not force_refresh and state.initialized and state.base_items:
            return

        generation = self._generation
        tag = state.active_tag
        bundle = await self._client.fetch_composed_for_tag(tag, force_refresh)

        if generation != self._generation:
            _logger.debug("Discarding %s bundle for %s: tag switched", self.kind.value, tag)
            return
        if bundle.is_empty():
            _logger.warning(
                "Nothing loaded for tag %s; keeping the current %s base", tag, self.kind.value
            )
            return
        self.set_items(bundle.items(self.kind), from_base=True)
        self._state.initialized = True

    def reload_overrides(self) -> None:
        """Re-read the active tag's stored override layer from storage."""
        self._load_snapshot()

    async def rehydrate(self) -> None:
        """Reload the active tag's stored override layer."""
        self.reload_overrides()

    def _begin_switch(self, tag: str) -> int:
        self._generation += 1
        self._state = StoreState(active_tag=tag, search_term=self._state.search_term)
        return self._generation

    async def _finish_switch(self, generation: int) -> None:
        await self.rehydrate()
        if generation != self._generation:
            return
        await self.initialize_from_config()

    async def switch_tag(self, tag: str) -> None:
        """Reset to ``tag``, rehydrate its overrides, then load its base."""
        generation = self._begin_switch(tag)
        await self._finish_switch(generation)

    def _on_tag_change(self, tag: str) -> None:
        if tag == self.active_tag:
            return
        generation = self._begin_switch(tag)
        try:
            loop = _asyncio.get_running_loop()
        except RuntimeError:
            # No loop: hydrate now, the next initialize_from_config loads the base.
            self._load_snapshot()
            return
        self._pending = loop.create_task(self._finish_switch(generation))
        self._pending.add_done_callback(self._log_switch_failure)

    def _log_switch_failure(self, task: _asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _logger.error("Switching %s store to a new tag failed: %s", self.kind.value, error)

    async def wait_until_settled(self) -> None:
        """Wait for a tag switch started by a resolver notification."""
        while self._pending is not None and not self._pending.done():
            await self._pending

    def close(self) -> None:
        """Stop following the resolver's active tag."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
