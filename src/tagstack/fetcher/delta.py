"""
Publish-time deltas: the inverse of composition.

Given a tag's effective records, compute the smallest documents the tag
would publish so that composing its parent chain plus those documents
reproduces the records.
"""

from __future__ import annotations

import collections.abc as _abc
import dataclasses as _dataclasses
import datetime as _datetime
import io as _io
import json as _json
import logging as _logging
import pathlib as _pathlib
import typing as _typing
import zipfile as _zipfile

import tagstack.constants as constants
import tagstack.fetcher.client as client_mod
import tagstack.overrides as overrides
import tagstack.utils as utils

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class ChildDeltaFiles:
    """The three documents a tag publishes."""

    tag: str
    config: dict[str, _typing.Any]
    events: list[overrides.Entity]
    tips: list[overrides.Entity]
    updated: str

    def documents(self) -> dict[str, _typing.Any]:
        """Document name -> JSON payload."""
        return {
            constants.TAG_CONFIG_DOCUMENTS[0]: {"updated": self.updated, **self.config},
            constants.EVENTS_DOCUMENT: {"updated": self.updated, "events": self.events},
            constants.TIPS_DOCUMENT: {"updated": self.updated, "tips": self.tips},
        }


def _now_iso() -> str:
    return _datetime.datetime.now(_datetime.timezone.utc).isoformat()


def delta_items(
    parent_items: _abc.Iterable[overrides.Entity],
    effective_items: _abc.Iterable[overrides.Entity],
) -> list[overrides.Entity]:
    """
    Minimal records turning ``parent_items`` into ``effective_items``.

    Records matching their parent version are omitted; changed records carry
    ``id`` plus the changed fields; records the parent lacks are emitted
    whole; parent records missing from the effective set become tombstones
    (appended last).
    """
    parent_map = overrides.build_id_map(parent_items)
    result: list[overrides.Entity] = []
    seen: set[str] = set()

    for item in effective_items:
        key = overrides.item_id(item)
        if key is None:
            continue
        seen.add(key)
        parent = parent_map.get(key)
        if parent is None:
            result.append(overrides.clone_item(item))
            continue
        delta = utils.compute_delta(parent, item)
        if delta:
            result.append({"id": key, **delta})

    for key in parent_map:
        if key not in seen:
            result.append({"id": key, "deleted": True})
    return result


async def build_child_delta_files(
    client: client_mod.ConfigClient,
    effective_events: _abc.Sequence[overrides.Entity],
    effective_tips: _abc.Sequence[overrides.Entity],
    tag: str,
    *,
    updated: str | None = None,
) -> ChildDeltaFiles:
    """
    Build the documents ``tag`` would publish over its parent chain.

    Only the parent chain (everything above the tag) is composed; the tag's
    own published layer is what is being replaced. The config document is
    the tag's own config, keeping its ``parent`` pointer.

    Args:
        client: Client used to walk and compose the chain.
        effective_events: The tag's current effective events.
        effective_tips: The tag's current effective tips.
        tag: The tag being published.
        updated: ``updated`` stamp for the documents (default: now, UTC).
    """
    chain = await client.walk_ancestry(tag)
    parent_chain = chain[:-1]
    if parent_chain:
        parent_bundle = client.compose_layers(parent_chain[-1].tag, parent_chain)
    else:
        parent_bundle = client_mod.TagBundle.empty(tag)

    leaf_config = chain[-1].config if chain else None
    config = utils.clone_json(leaf_config) if leaf_config else {}

    _logger.debug(
        "Building delta files for %s over parent chain %s",
        tag,
        [layer.tag for layer in parent_chain],
    )
    return ChildDeltaFiles(
        tag=tag,
        config=config,
        events=delta_items(parent_bundle.events, effective_events),
        tips=delta_items(parent_bundle.tips, effective_tips),
        updated=updated or _now_iso(),
    )


def _dump(payload: _typing.Any) -> str:
    return _json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def write_delta_files(files: ChildDeltaFiles, directory: _pathlib.Path) -> list[_pathlib.Path]:
    """
    Write the three documents into a directory (created if needed).

    Returns:
        Paths written, in document order.
    """
    directory.mkdir(parents=True, exist_ok=True)
    written: list[_pathlib.Path] = []
    for name, payload in files.documents().items():
        path = directory / name
        path.write_text(_dump(payload), encoding="utf-8")
        written.append(path)
    _logger.info("Wrote delta files for %s to %s", files.tag, directory)
    return written


def build_delta_archive(files: ChildDeltaFiles | _abc.Iterable[ChildDeltaFiles]) -> bytes:
    """Zip one or more tags' documents, each under a ``<tag>/`` folder."""
    all_files = [files] if isinstance(files, ChildDeltaFiles) else list(files)
    buffer = _io.BytesIO()
    with _zipfile.ZipFile(buffer, "w", compression=_zipfile.ZIP_DEFLATED) as archive:
        for entry in all_files:
            for name, payload in entry.documents().items():
                archive.writestr(f"{entry.tag}/{name}", _dump(payload))
    return buffer.getvalue()
