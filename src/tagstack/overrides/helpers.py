"""
Conversion between a final item list and its base + override representation.

A tenant's effective items are never stored whole. They are described as:

- base items (the composed bundle for the tag)
- an override map: id -> full replacement item (or a brand new item)
- a deleted-id list: base ids removed locally

These helpers only know that items are dicts carrying a string ``id``; they
are shared by the events and tips stores.
"""

from __future__ import annotations

import collections.abc as _abc
import dataclasses as _dataclasses
import typing as _typing

import tagstack.utils as utils

Entity: _typing.TypeAlias = dict[str, _typing.Any]
"""Any JSON object identified by a string ``id`` field."""

OverrideMap: _typing.TypeAlias = dict[str, Entity]


def item_id(item: _typing.Any) -> str | None:
    """Return the item's id, or None if it is not an identifiable dict."""
    if not isinstance(item, dict):
        return None
    value = item.get("id")
    return value if isinstance(value, str) else None


def clone_item(item: Entity) -> Entity:
    """Deep copy an item so callers can mutate it freely."""
    return _typing.cast(Entity, utils.clone_json(item))


@_dataclasses.dataclass
class DerivedOverrides:
    """Result of diffing a final item list against a base."""

    overrides_by_id: OverrideMap = _dataclasses.field(default_factory=dict)
    deleted_ids: list[str] = _dataclasses.field(default_factory=list)


def build_id_map(items: _abc.Iterable[_typing.Any]) -> OverrideMap:
    """
    Index items by id.

    Later duplicates win. Items without a string id are skipped.
    """
    result: OverrideMap = {}
    for item in items:
        key = item_id(item)
        if key is None:
            continue
        result[key] = item
    return result


def id_map_to_list(items_by_id: _abc.Mapping[str, Entity]) -> list[Entity]:
    """Flatten an id map back to a list in map order."""
    return list(items_by_id.values())


def compose_with_overrides(
    base_items: _abc.Sequence[Entity],
    overrides_by_id: _abc.Mapping[str, Entity],
    deleted_ids: _abc.Iterable[str],
) -> list[Entity]:
    """
    Build the effective item list from base, overrides, and deletions.

    Base order is preserved: deleted base ids are skipped and overridden ids
    are substituted in place. Override-only ids (new local records) follow in
    map order unless they are also deleted. Every returned item is a deep
    copy, so mutating the result never touches the base or override store.

    Args:
        base_items: Items from the composed bundle.
        overrides_by_id: Local replacements and additions.
        deleted_ids: Locally removed ids.

    Returns:
        The composed list.
    """
    deleted = set(deleted_ids or ())
    merged: list[Entity] = []
    seen: set[str] = set()

    for base_item in base_items:
        key = item_id(base_item)
        if key is None or key in deleted:
            continue
        override = overrides_by_id.get(key)
        merged.append(clone_item(override if override else base_item))
        seen.add(key)

    for key, override in overrides_by_id.items():
        if key in seen or key in deleted:
            continue
        merged.append(clone_item(override))

    return merged


def derive_overrides_from_final(
    final_items: _abc.Sequence[Entity],
    base_map: _abc.Mapping[str, Entity],
) -> DerivedOverrides:
    """
    Recover the sparse override layer that produces ``final_items``.

    - base ids missing from the final list become deletions
    - base ids whose final version differs become overrides
    - ids only present in the final list become overrides (new records)

    Composing the result over the same base reproduces the final list's ids
    and content.
    """
    derived = DerivedOverrides()
    final_map = build_id_map(final_items)

    for key, base_item in base_map.items():
        final_item = final_map.get(key)
        if final_item is None:
            derived.deleted_ids.append(key)
            continue
        if not utils.deep_equal(base_item, final_item):
            derived.overrides_by_id[key] = clone_item(final_item)

    for key, final_item in final_map.items():
        if key not in base_map:
            derived.overrides_by_id[key] = clone_item(final_item)

    return derived


def upsert_override_map(
    base_map: _abc.Mapping[str, Entity],
    overrides_by_id: _abc.Mapping[str, Entity],
    changed_items: _abc.Iterable[Entity],
) -> OverrideMap:
    """
    Record changed items in a copy of the override map.

    An item equal to its base counterpart drops any existing override
    instead of storing a no-op, so the map stays minimal.

    Returns:
        The new override map. The input map is not modified.
    """
    result: OverrideMap = dict(overrides_by_id)
    for item in changed_items or ():
        key = item_id(item)
        if key is None:
            continue
        base_item = base_map.get(key)
        if base_item is not None and utils.deep_equal(base_item, item):
            result.pop(key, None)
        else:
            result[key] = clone_item(item)
    return result


def ensure_id_added(ids: _abc.Sequence[str], value: str) -> list[str]:
    """Return a copy of ``ids`` containing ``value`` exactly once."""
    if not value or value in ids:
        return list(ids)
    return [*ids, value]


def ensure_id_removed(ids: _abc.Sequence[str], value: str) -> list[str]:
    """Return a copy of ``ids`` without ``value``."""
    if not value:
        return list(ids)
    return [existing for existing in ids if existing != value]


def reconcile_legacy_final_items(
    legacy_items: _abc.Sequence[Entity] | None,
    base_map: _abc.Mapping[str, Entity],
) -> DerivedOverrides:
    """Convert a legacy full-list snapshot into overrides against a new base."""
    if not legacy_items:
        return DerivedOverrides()
    return derive_overrides_from_final(legacy_items, base_map)


def apply_override_snapshot(
    items_by_id: dict[str, Entity],
    overrides_by_id: _abc.Mapping[str, Entity],
    deleted_ids: _abc.Iterable[str],
) -> None:
    """
    Apply an override layer onto a running id map in place.

    Overrides replace (not merge) the running item, then deletions win as
    they do in compose_with_overrides. Used when a stored tenant layer is
    spliced into an ancestry composition.
    """
    for key, override in overrides_by_id.items():
        items_by_id[key] = clone_item(override)
    for key in deleted_ids:
        items_by_id.pop(key, None)
