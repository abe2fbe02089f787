"""
Layers and their composition.

A layer is what one tag publishes on its own: a config object plus events
and tips records. Child layers usually carry partial records (only the fields
they change) and tombstones (``{"id": ..., "deleted": true}``).

Composing an ancestry chain root-first yields one effective record set per
kind: each layer's records are deep-merged into a running id map (child
fields win), then the layer's tombstones remove ids from it. A later layer
may re-add a tombstoned id.
"""

from __future__ import annotations

import collections.abc as _abc
import dataclasses as _dataclasses
import typing as _typing

import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.tags as tags
import tagstack.utils as utils


@_dataclasses.dataclass
class UpdatedStamps:
    """``updated`` strings reported by the documents behind a bundle."""

    root: str | None = None
    tag_config: str | None = None
    events: str | None = None
    events_archive: str | None = None
    tips: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "root": self.root,
            "tagConfig": self.tag_config,
            "events": self.events,
            "eventsArchive": self.events_archive,
            "tips": self.tips,
        }


@_dataclasses.dataclass
class Layer:
    """The raw data contributed by exactly one tag."""

    tag: str
    config: dict[str, _typing.Any] | None = None
    events: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    events_tombstones: set[str] = _dataclasses.field(default_factory=set)
    tips: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    tips_tombstones: set[str] = _dataclasses.field(default_factory=set)
    updated: UpdatedStamps = _dataclasses.field(default_factory=UpdatedStamps)

    @property
    def parent(self) -> str | None:
        """Sanitized parent tag named by this layer's config, if any."""
        if not self.config:
            return None
        value = self.config.get("parent")
        return tags.sanitize_tag(value) if isinstance(value, str) else None

    def items(self, kind: models.EntityKind) -> list[overrides.Entity]:
        return self.events if kind is models.EntityKind.EVENTS else self.tips

    def tombstones(self, kind: models.EntityKind) -> set[str]:
        return self.events_tombstones if kind is models.EntityKind.EVENTS else self.tips_tombstones


@_dataclasses.dataclass
class LocalLayerOverrides:
    """A tenant's stored override layer, spliced in after that tenant's layer."""

    events: overrides.OverrideSnapshot | None = None
    tips: overrides.OverrideSnapshot | None = None

    def for_kind(self, kind: models.EntityKind) -> overrides.OverrideSnapshot | None:
        return self.events if kind is models.EntityKind.EVENTS else self.tips


@_dataclasses.dataclass
class ComposedItems:
    """Effective records of a composed chain."""

    events: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    tips: list[overrides.Entity] = _dataclasses.field(default_factory=list)


def extract_array(payload: _typing.Any, key: str) -> tuple[list[_typing.Any], str | None]:
    """
    Read a record list from a document.

    Accepts ``{"updated": ..., "<key>": [...]}`` or a bare list. A bare list
    reports ``updated`` only when its first record carries one.

    Returns:
        Tuple of (records, updated).
    """
    if not payload:
        return [], None
    if isinstance(payload, list):
        first = payload[0] if payload else None
        updated = first.get("updated") if isinstance(first, dict) else None
        return payload, updated if isinstance(updated, str) else None
    if not isinstance(payload, dict):
        return [], None
    updated = payload.get("updated")
    items = payload.get(key)
    return (
        items if isinstance(items, list) else [],
        updated if isinstance(updated, str) else None,
    )


def normalize_events(events: _abc.Iterable[overrides.Entity], archived: bool) -> list[overrides.Entity]:
    """
    Stamp ``archived: true`` on records read from an archive document.

    Active records are left as written: a child layer's partial record must
    not un-archive an event its parent archived. A missing flag reads as
    not archived. Tombstones are never stamped.
    """
    if not archived:
        return list(events)
    return [
        event if event.get("deleted") is True else {**event, "archived": True}
        for event in events
    ]


def split_tombstones(
    items: _abc.Iterable[overrides.Entity],
) -> tuple[list[overrides.Entity], set[str]]:
    """Separate ``deleted: true`` markers from content records."""
    content: list[overrides.Entity] = []
    tombstones: set[str] = set()
    for item in items:
        key = overrides.item_id(item)
        if key is None:
            continue
        if item.get("deleted") is True:
            tombstones.add(key)
        else:
            content.append(item)
    return content, tombstones


def layer_from_documents(
    tag: str,
    config_payload: _typing.Any,
    events_payload: _typing.Any,
    archive_payload: _typing.Any,
    tips_payload: _typing.Any,
) -> Layer:
    """
    Build a Layer from a tag's decoded documents (None = document absent).

    The config's ``updated`` stamp is moved out of the config object. Records
    are validated against the entity schemas; invalid ones are dropped.
    """
    config: dict[str, _typing.Any] | None = None
    config_updated: str | None = None
    if isinstance(config_payload, dict):
        config = dict(config_payload)
        stamp = config.pop("updated", None)
        config_updated = stamp if isinstance(stamp, str) else None

    active, events_updated = extract_array(events_payload, "events")
    archived, archive_updated = extract_array(archive_payload, "events")
    tip_items, tips_updated = extract_array(tips_payload, "tips")

    events = models.validate_items(models.EntityKind.EVENTS, active, source=f"{tag}/events.json")
    archived = models.validate_items(
        models.EntityKind.EVENTS, archived, source=f"{tag}/events_archive.json"
    )
    tip_items = models.validate_items(models.EntityKind.TIPS, tip_items, source=f"{tag}/tips.json")

    event_content, event_tombstones = split_tombstones(
        normalize_events(events, archived=False) + normalize_events(archived, archived=True)
    )
    tip_content, tip_tombstones = split_tombstones(tip_items)

    return Layer(
        tag=tag,
        config=config,
        events=event_content,
        events_tombstones=event_tombstones,
        tips=tip_content,
        tips_tombstones=tip_tombstones,
        updated=UpdatedStamps(
            tag_config=config_updated,
            events=events_updated,
            events_archive=archive_updated,
            tips=tips_updated,
        ),
    )


def _apply_local(
    running: dict[str, overrides.Entity],
    snapshot: overrides.OverrideSnapshot | None,
) -> None:
    if snapshot is None:
        return
    overrides_by_id = snapshot.overrides_by_id
    deleted_ids = snapshot.deleted_ids
    if snapshot.legacy_items is not None and not overrides_by_id and not deleted_ids:
        derived = overrides.reconcile_legacy_final_items(snapshot.legacy_items, running)
        overrides_by_id = derived.overrides_by_id
        deleted_ids = derived.deleted_ids
    overrides.apply_override_snapshot(running, overrides_by_id, deleted_ids)


def compose_from_layers(
    layers: _abc.Sequence[Layer],
    local_overrides_by_tag: _abc.Mapping[str, LocalLayerOverrides] | None = None,
) -> ComposedItems:
    """
    Merge an ancestry chain (root first) into effective records.

    For each layer: deep-merge its records into the running maps by id, drop
    its tombstoned ids, then (if ``local_overrides_by_tag`` has an entry for
    the layer's tag) apply that tenant's stored overrides and deletions.

    Args:
        layers: Layers ordered root to leaf.
        local_overrides_by_tag: Stored override layers to splice in.

    Returns:
        The composed events and tips, in first-seen id order.
    """
    events_by_id: dict[str, overrides.Entity] = {}
    tips_by_id: dict[str, overrides.Entity] = {}
    running = {models.EntityKind.EVENTS: events_by_id, models.EntityKind.TIPS: tips_by_id}

    for layer in layers:
        for kind, items_by_id in running.items():
            for item in layer.items(kind):
                key = overrides.item_id(item)
                if key is None:
                    continue
                items_by_id[key] = utils.deep_merge(items_by_id.get(key), item)
            for key in layer.tombstones(kind):
                items_by_id.pop(key, None)

        if local_overrides_by_tag and layer.tag in local_overrides_by_tag:
            local = local_overrides_by_tag[layer.tag]
            _apply_local(events_by_id, local.events)
            _apply_local(tips_by_id, local.tips)

    return ComposedItems(
        events=overrides.id_map_to_list(events_by_id),
        tips=overrides.id_map_to_list(tips_by_id),
    )


def compose_tag_config(layers: _abc.Sequence[Layer]) -> dict[str, _typing.Any] | None:
    """
    Merge the config objects of a chain (root first).

    The result's ``parent`` is always the leaf's own parent pointer, never
    one inherited from an ancestor.
    """
    if not layers or all(layer.config is None for layer in layers):
        return None
    merged: dict[str, _typing.Any] = {}
    for layer in layers:
        if layer.config is not None:
            merged = utils.deep_merge(merged, layer.config)
    merged.pop("parent", None)
    leaf_parent = layers[-1].parent
    if leaf_parent:
        merged["parent"] = leaf_parent
    return merged


def merge_updated(layers: _abc.Sequence[Layer], root_updated: str | None) -> UpdatedStamps:
    """Latest non-null ``updated`` stamps along the chain (leaf wins)."""
    stamps = UpdatedStamps(root=root_updated)
    for layer in layers:
        for field in ("tag_config", "events", "events_archive", "tips"):
            value = getattr(layer.updated, field)
            if value is not None:
                setattr(stamps, field, value)
    return stamps
