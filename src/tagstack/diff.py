"""
Per-record comparison of a tag against its parent chain.

Answers, for each effective record of a tag: does the parent chain have it,
and which fields does this tag override? The parent chain is always
recomposed from fresh documents rather than read from the bundle cache, so
the answer reflects what is published right now.
"""

from __future__ import annotations

import collections.abc as _abc
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import tagstack.fetcher as fetcher
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.utils as utils

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class DiffInfo:
    """How one record relates to its parent-chain version."""

    parent_exists: bool
    new_in_tag: bool
    override_keys: list[str] = _dataclasses.field(default_factory=list)

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "parentExists": self.parent_exists,
            "newInTag": self.new_in_tag,
            "overrideKeys": list(self.override_keys),
        }


@_dataclasses.dataclass
class DiffIndex:
    """DiffInfo for every effective record of a tag, by kind and id."""

    has_parent_chain: bool
    parent_tag: str | None = None
    events: dict[str, DiffInfo] = _dataclasses.field(default_factory=dict)
    tips: dict[str, DiffInfo] = _dataclasses.field(default_factory=dict)

    def for_kind(self, kind: models.EntityKind) -> dict[str, DiffInfo]:
        return self.events if kind is models.EntityKind.EVENTS else self.tips

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "hasParentChain": self.has_parent_chain,
            "parentTag": self.parent_tag,
            "events": {key: info.to_dict() for key, info in self.events.items()},
            "tips": {key: info.to_dict() for key, info in self.tips.items()},
        }


def diff_items(
    parent_items: _abc.Iterable[overrides.Entity] | None,
    effective_items: _abc.Iterable[overrides.Entity],
) -> dict[str, DiffInfo]:
    """
    Compare effective records with their parent versions.

    With ``parent_items`` of None (no parent chain) every record is new in
    the tag.
    """
    parent_map = overrides.build_id_map(parent_items or [])
    result: dict[str, DiffInfo] = {}
    for item in effective_items:
        key = overrides.item_id(item)
        if key is None:
            continue
        parent = parent_map.get(key)
        if parent is None:
            result[key] = DiffInfo(parent_exists=False, new_in_tag=True)
            continue
        delta = utils.compute_delta(parent, item)
        result[key] = DiffInfo(
            parent_exists=True,
            new_in_tag=False,
            override_keys=list(delta) if isinstance(delta, dict) else [],
        )
    return result


async def fetch_parent_composed(
    client: fetcher.ConfigClient,
    tag: str,
    *,
    include_local_overrides: bool = False,
) -> fetcher.TagBundle | None:
    """
    Compose the immediate parent's chain of a tag, bypassing the cache.

    Returns:
        The parent's bundle, or None if the tag has no parent.
    """
    chain = await client.walk_ancestry(tag)
    leaf_parent = chain[-1].parent if chain else None
    parent_chain = chain[:-1]
    if not leaf_parent or not parent_chain:
        return None
    return client.compose_layers(
        leaf_parent,
        parent_chain,
        include_local_overrides=include_local_overrides,
        include_leaf=True,
    )


async def fetch_parent_item(
    client: fetcher.ConfigClient,
    tag: str,
    kind: models.EntityKind,
    item_id: str,
) -> overrides.Entity | None:
    """The parent chain's version of one record, or None."""
    parent = await fetch_parent_composed(client, tag)
    if parent is None:
        return None
    for item in parent.items(kind):
        if overrides.item_id(item) == item_id:
            return item
    return None


async def compute_diff_index_for_tag(
    client: fetcher.ConfigClient,
    effective_events: _abc.Iterable[overrides.Entity],
    effective_tips: _abc.Iterable[overrides.Entity],
    tag: str,
    *,
    include_local_overrides: bool = False,
) -> DiffIndex:
    """
    Build the DiffIndex of a tag's effective records.

    Args:
        client: Client used to walk and compose the parent chain.
        effective_events: The tag's current effective events.
        effective_tips: The tag's current effective tips.
        tag: The tag being inspected.
        include_local_overrides: Surface ancestors' stored overrides in the
            parent versions.
    """
    parent = await fetch_parent_composed(
        client, tag, include_local_overrides=include_local_overrides
    )
    if parent is None:
        _logger.debug("Tag %s has no parent chain; every record is new", tag)
        return DiffIndex(
            has_parent_chain=False,
            events=diff_items(None, effective_events),
            tips=diff_items(None, effective_tips),
        )
    return DiffIndex(
        has_parent_chain=True,
        parent_tag=parent.tag,
        events=diff_items(parent.events, effective_events),
        tips=diff_items(parent.tips, effective_tips),
    )
