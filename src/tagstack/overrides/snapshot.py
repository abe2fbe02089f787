"""
Persisted form of a tenant's override layer.

Current format (version 1)::

    {
        "version": 1,
        "overridesById": {"<id>": {...}},
        "deletedIds": ["<id>", ...],
        "legacyItems": null
    }

Older clients stored the whole final list instead (version 0)::

    {"version": 0, "state": {"events": [...]}}

Version 0 payloads are migrated on read into ``legacy_items``; the store
reconciles them against the next base it sees and clears them.
"""

from __future__ import annotations

import collections.abc as _abc
import dataclasses as _dataclasses
import json as _json
import logging as _logging
import typing as _typing

import tagstack.overrides.helpers as helpers

_logger = _logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@_dataclasses.dataclass
class OverrideSnapshot:
    """A tenant's stored override layer for one entity kind."""

    overrides_by_id: helpers.OverrideMap = _dataclasses.field(default_factory=dict)
    deleted_ids: list[str] = _dataclasses.field(default_factory=list)
    legacy_items: list[helpers.Entity] | None = None

    def is_empty(self) -> bool:
        """True when the snapshot carries no local divergence at all."""
        return not self.overrides_by_id and not self.deleted_ids and self.legacy_items is None

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to the version 1 storage payload."""
        return {
            "version": SNAPSHOT_VERSION,
            "overridesById": self.overrides_by_id,
            "deletedIds": self.deleted_ids,
            "legacyItems": self.legacy_items,
        }

    def dumps(self) -> str:
        """Serialize to the JSON string written to storage."""
        return _json.dumps(self.to_dict())

    @classmethod
    def from_dict(
        cls,
        data: _abc.Mapping[str, _typing.Any],
        legacy_key: str,
    ) -> OverrideSnapshot:
        """
        Build a snapshot from a stored payload, migrating version 0.

        Args:
            data: Parsed payload.
            legacy_key: Key of the item list inside a version 0 ``state``
                object (``"events"`` or ``"tips"``).

        Raises:
            ValueError: If the payload has an unexpected shape.
        """
        version = data.get("version", 0)

        if version == 0 or "state" in data:
            state = data.get("state")
            if not isinstance(state, dict):
                raise ValueError("legacy snapshot has no state object")
            items = state.get(legacy_key)
            if not isinstance(items, list):
                raise ValueError(f"legacy snapshot has no {legacy_key!r} list")
            return cls(legacy_items=[item for item in items if helpers.item_id(item)])

        overrides = data.get("overridesById") or {}
        deleted = data.get("deletedIds") or []
        legacy = data.get("legacyItems")
        if not isinstance(overrides, dict) or not isinstance(deleted, list):
            raise ValueError("snapshot fields have unexpected types")
        if legacy is not None and not isinstance(legacy, list):
            raise ValueError("legacyItems must be a list or null")

        return cls(
            overrides_by_id={
                key: value
                for key, value in overrides.items()
                if isinstance(key, str) and helpers.item_id(value) == key
            },
            deleted_ids=[value for value in deleted if isinstance(value, str)],
            legacy_items=legacy,
        )

    @classmethod
    def loads(cls, raw: str | None, legacy_key: str) -> OverrideSnapshot | None:
        """
        Parse a stored payload.

        Malformed payloads are treated as "no stored overrides": they are
        logged and None is returned.
        """
        if not raw:
            return None
        try:
            data = _json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("snapshot payload is not an object")
            return cls.from_dict(data, legacy_key)
        except ValueError as e:
            _logger.warning("Discarding malformed override snapshot: %s", e)
            return None
