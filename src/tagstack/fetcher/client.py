"""
Config client: ancestry walking, composition, and caching.

The client owns every cache that used to be process-wide state:

- the root document (hostname -> tag mapping), cached for ``cache_ttl``
- composed bundles per (tag, include_local_overrides), cached for
  ``cache_ttl``
- in-flight bundle loads, so concurrent callers for the same key share one
  ancestry walk instead of issuing their own

Each bundle load takes a generation number. A force refresh (or cache
invalidation) bumps it, and a load that finishes under a stale generation is
returned to its own caller but never written to the cache. A whole walk is
bounded by ``bundle_timeout`` so a hung request cannot stall a tag forever.

Fetch failures never raise out of ``fetch_config``: callers get an empty
bundle, which means "nothing loaded", not necessarily an error.
"""

from __future__ import annotations

import asyncio as _asyncio
import collections.abc as _abc
import dataclasses as _dataclasses
import logging as _logging
import time as _time
import typing as _typing

import httpx as _httpx

import tagstack.constants as constants
import tagstack.fetcher.layers as layers_mod
import tagstack.fetcher.transport as transport_mod
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.storage as storage
import tagstack.tags as tags

if _typing.TYPE_CHECKING:
    import tagstack.config as config

_logger = _logging.getLogger(__name__)

CacheKey: _typing.TypeAlias = tuple[str, bool]


@_dataclasses.dataclass
class TagBundle:
    """The composed view of one tag's ancestry chain."""

    tag: str
    tag_config: dict[str, _typing.Any] | None = None
    events: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    archived_events: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    tips: list[overrides.Entity] = _dataclasses.field(default_factory=list)
    updated: layers_mod.UpdatedStamps = _dataclasses.field(default_factory=layers_mod.UpdatedStamps)
    ancestry: list[str] = _dataclasses.field(default_factory=list)
    """Tags composed into this bundle, root first. Empty for an empty bundle."""

    @classmethod
    def empty(cls, tag: str) -> TagBundle:
        """A bundle meaning "nothing loaded"."""
        return cls(tag=tag)

    @property
    def parent(self) -> str | None:
        """Immediate parent tag named by the composed tag config."""
        if not self.tag_config:
            return None
        value = self.tag_config.get("parent")
        return tags.sanitize_tag(value) if isinstance(value, str) else None

    def is_empty(self) -> bool:
        return self.tag_config is None and not self.events and not self.tips

    def items(self, kind: models.EntityKind) -> list[overrides.Entity]:
        return self.events if kind is models.EntityKind.EVENTS else self.tips

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "tag": self.tag,
            "tagConfig": self.tag_config,
            "events": self.events,
            "archivedEvents": self.archived_events,
            "tips": self.tips,
            "updated": self.updated.to_dict(),
            "ancestry": self.ancestry,
        }


@_dataclasses.dataclass
class _CacheEntry:
    bundle: TagBundle
    timestamp: float


@_dataclasses.dataclass
class _InFlight:
    task: _asyncio.Task[TagBundle]
    generation: int


class ConfigClient:
    """
    Fetches, composes, and caches tag bundles.

    Use one instance per application (or per test); nothing is shared
    between instances.
    """

    def __init__(
        self,
        transport: transport_mod.DocumentTransport,
        resolver: tags.TagResolver,
        scoped_storage: storage.ScopedStorage | None = None,
        *,
        cache_ttl: float = constants.DEFAULT_CACHE_TTL,
        max_chain_depth: int = constants.MAX_CHAIN_DEPTH,
        bundle_timeout: float | None = constants.DEFAULT_BUNDLE_TIMEOUT,
        clock: _typing.Callable[[], float] = _time.monotonic,
    ) -> None:
        """
        Initialize the client.

        Args:
            transport: Document transport for the remote layout.
            resolver: Active tag resolver (read for resolution, written
                when ``fetch_config`` settles on a tag).
            scoped_storage: Per-tag override snapshots, needed only for
                compositions that surface ancestor local overrides.
            cache_ttl: Seconds a root document or bundle stays cached.
            max_chain_depth: Maximum tags walked along parent pointers.
            bundle_timeout: Seconds allowed for one ancestry walk
                (None = unbounded).
            clock: Monotonic time source (injectable for tests).
        """
        self._transport = transport
        self._resolver = resolver
        self._scoped_storage = scoped_storage
        self._cache_ttl = cache_ttl
        self._max_chain_depth = max(1, max_chain_depth)
        self._bundle_timeout = bundle_timeout
        self._clock = clock

        self._root_config: dict[str, _typing.Any] | None = None
        self._root_timestamp = 0.0
        self._root_task: _asyncio.Task[dict[str, _typing.Any]] | None = None

        self._cache: dict[CacheKey, _CacheEntry] = {}
        self._in_flight: dict[CacheKey, _InFlight] = {}
        self._generations: dict[CacheKey, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings,
        resolver: tags.TagResolver,
        scoped_storage: storage.ScopedStorage | None = None,
        *,
        http_transport: _httpx.AsyncBaseTransport | None = None,
    ) -> ConfigClient:
        """Create a client configured from Settings."""
        transport = transport_mod.DocumentTransport(
            settings.fetch.resolve_base_url(resolver.location),
            timeout=settings.fetch.timeout,
            transport=http_transport,
        )
        return cls(
            transport,
            resolver,
            scoped_storage,
            cache_ttl=settings.fetch.cache_ttl,
            max_chain_depth=settings.tags.max_chain_depth,
            bundle_timeout=settings.fetch.bundle_timeout,
        )

    @property
    def resolver(self) -> tags.TagResolver:
        return self._resolver

    @property
    def scoped_storage(self) -> storage.ScopedStorage | None:
        return self._scoped_storage

    @property
    def transport(self) -> transport_mod.DocumentTransport:
        return self._transport

    # =========================================================================
    # Root document and tag resolution
    # =========================================================================

    async def fetch_root_config(self, force: bool = False) -> dict[str, _typing.Any]:
        """
        Fetch the root document (``default.json``).

        A missing or invalid root document reads as ``{}``. The result is
        cached for ``cache_ttl`` and concurrent callers share one request.
        """
        if force:
            self._root_task = None
            self._root_config = None
            self._root_timestamp = 0.0
        elif self._root_config is not None and (
            self._clock() - self._root_timestamp < self._cache_ttl
        ):
            return self._root_config
        elif self._root_task is not None:
            return await _asyncio.shield(self._root_task)

        task = _asyncio.ensure_future(self._load_root_config())
        self._root_task = task
        try:
            root = await _asyncio.shield(task)
        finally:
            if self._root_task is task:
                self._root_task = None
        self._root_config = root
        self._root_timestamp = self._clock()
        return root

    async def _load_root_config(self) -> dict[str, _typing.Any]:
        result = await self._transport.fetch_json(constants.ROOT_DOCUMENT)
        root = result.value_or_none()
        if not isinstance(root, dict):
            if result.ok:
                _logger.warning("Root document is not an object; ignoring it")
            return {}
        return root

    def resolve_tag(self, root: _abc.Mapping[str, _typing.Any]) -> str:
        """
        Decide which tag to load.

        Order: ``?tag=`` query pin, the root document's mapping for the
        page hostname, the root document's ``defaultTag``, then the tag
        remembered from a previous session.

        Raises:
            TagResolutionError: If no source yields a tag.
        """
        override = self._resolver.get_tag_override()
        if override:
            return override

        hostname = self._resolver.location.hostname
        domains = root.get("domains")
        if hostname and isinstance(domains, dict):
            mapping = domains.get(hostname)
            if isinstance(mapping, dict) and isinstance(mapping.get("tag"), str):
                domain_tag = tags.sanitize_tag(mapping["tag"])
                if domain_tag:
                    return domain_tag

        default_tag = root.get("defaultTag")
        if isinstance(default_tag, str):
            sanitized = tags.sanitize_tag(default_tag)
            if sanitized:
                return sanitized

        stored = self._resolver.stored_tag()
        if stored:
            return stored

        raise tags.TagResolutionError("Unable to resolve configuration tag")

    # =========================================================================
    # Layers and ancestry
    # =========================================================================

    async def _fetch_tag_config(self, tag: str) -> _typing.Any:
        for name in constants.TAG_CONFIG_DOCUMENTS:
            result = await self._transport.fetch_json(f"{tag}/{name}")
            if result.ok:
                return result.value
        return None

    async def fetch_layer(self, tag: str) -> layers_mod.Layer:
        """Fetch one tag's own documents. Absent documents yield empty parts."""
        config_payload, events, archive, tips = await _asyncio.gather(
            self._fetch_tag_config(tag),
            self._transport.fetch_json(f"{tag}/{constants.EVENTS_DOCUMENT}"),
            self._transport.fetch_json(f"{tag}/{constants.EVENTS_ARCHIVE_DOCUMENT}"),
            self._transport.fetch_json(f"{tag}/{constants.TIPS_DOCUMENT}"),
        )
        return layers_mod.layer_from_documents(
            tag,
            config_payload,
            events.value_or_none(),
            archive.value_or_none(),
            tips.value_or_none(),
        )

    async def walk_ancestry(self, leaf_tag: str) -> list[layers_mod.Layer]:
        """
        Fetch the layers of a tag and its ancestors, root first.

        Parents are followed one at a time (each parent is only known once
        the child's config arrives). The walk stops at a root, at a parent
        already visited (a cycle), or after ``max_chain_depth`` tags; the
        latter two are logged and the chain is truncated.
        """
        chain: list[layers_mod.Layer] = []
        visited: set[str] = set()
        current: str | None = leaf_tag

        while current:
            layer = await self.fetch_layer(current)
            chain.append(layer)
            visited.add(current)

            parent = layer.parent
            if not parent:
                break
            if parent in visited:
                _logger.warning(
                    "Tag ancestry cycle: %s names %s as parent, which is already in the chain %s",
                    current,
                    parent,
                    [item.tag for item in reversed(chain)],
                )
                break
            if len(chain) >= self._max_chain_depth:
                _logger.warning(
                    "Tag ancestry of %s exceeds %d levels; truncating at %s",
                    leaf_tag,
                    self._max_chain_depth,
                    current,
                )
                break
            current = parent

        chain.reverse()
        return chain

    async def build_ancestry(self, leaf_tag: str) -> list[str]:
        """Tags of a chain, root first, ending with ``leaf_tag``."""
        return [layer.tag for layer in await self.walk_ancestry(leaf_tag)]

    # =========================================================================
    # Composition
    # =========================================================================

    def local_overrides_for(
        self,
        tags_in_chain: _abc.Iterable[str],
    ) -> dict[str, layers_mod.LocalLayerOverrides]:
        """Read stored override layers for the given tags."""
        if self._scoped_storage is None:
            return {}
        result: dict[str, layers_mod.LocalLayerOverrides] = {}
        for tag in tags_in_chain:
            local = layers_mod.LocalLayerOverrides(
                events=self._scoped_storage.read_snapshot(tag, models.EntityKind.EVENTS),
                tips=self._scoped_storage.read_snapshot(tag, models.EntityKind.TIPS),
            )
            if local.events is not None or local.tips is not None:
                result[tag] = local
        return result

    def compose_layers(
        self,
        tag: str,
        chain: _abc.Sequence[layers_mod.Layer],
        *,
        include_local_overrides: bool = False,
        include_leaf: bool = False,
    ) -> TagBundle:
        """
        Compose already-fetched layers into a bundle.

        With ``include_local_overrides``, stored overrides of every tag in
        the chain except the leaf are applied right after that tag's layer,
        so an ancestor's local edits show through to this tag. ``include_leaf``
        applies the leaf's own overrides as well.
        """
        local: dict[str, layers_mod.LocalLayerOverrides] | None = None
        if include_local_overrides and chain:
            scope = chain if include_leaf else chain[:-1]
            local = self.local_overrides_for(layer.tag for layer in scope)

        composed = layers_mod.compose_from_layers(chain, local)
        root_updated = self._root_config.get("updated") if self._root_config else None
        return TagBundle(
            tag=tag,
            tag_config=layers_mod.compose_tag_config(chain),
            events=composed.events,
            archived_events=[event for event in composed.events if event.get("archived") is True],
            tips=composed.tips,
            updated=layers_mod.merge_updated(
                chain, root_updated if isinstance(root_updated, str) else None
            ),
            ancestry=[layer.tag for layer in chain],
        )

    async def compose_chain(
        self,
        tag: str,
        *,
        include_local_overrides: bool = False,
    ) -> TagBundle:
        """Walk and compose a tag's chain, bypassing every cache."""
        chain = await self.walk_ancestry(tag)
        return self.compose_layers(tag, chain, include_local_overrides=include_local_overrides)

    async def _load_bundle(self, tag: str, include_local_overrides: bool) -> TagBundle:
        coro = self.compose_chain(tag, include_local_overrides=include_local_overrides)
        if self._bundle_timeout is None:
            return await coro
        return await _asyncio.wait_for(coro, timeout=self._bundle_timeout)

    @staticmethod
    async def _await_load(tag: str, task: _asyncio.Task[TagBundle]) -> TagBundle | None:
        """Wait for a shared load; None if it timed out."""
        try:
            return await _asyncio.shield(task)
        except _asyncio.TimeoutError:
            _logger.warning("Timed out composing bundle for tag %s", tag)
            return None

    async def fetch_composed_for_tag(
        self,
        tag: str,
        force: bool = False,
        *,
        include_local_overrides: bool = False,
    ) -> TagBundle:
        """
        Return the composed bundle for a tag, using the cache.

        Concurrent callers for the same tag share one load. ``force`` drops
        the cached and in-flight entries and starts a fresh load; a load it
        superseded can no longer write to the cache. A walk that times out
        yields an empty bundle to every caller sharing it, and nothing is
        cached.
        """
        key: CacheKey = (tag, include_local_overrides)

        if not force:
            entry = self._cache.get(key)
            if entry is not None and self._clock() - entry.timestamp < self._cache_ttl:
                _logger.debug("Bundle cache hit for %s", tag)
                return entry.bundle
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                joined = await self._await_load(tag, in_flight.task)
                return joined if joined is not None else TagBundle.empty(tag)
        else:
            self._cache.pop(key, None)
            self._in_flight.pop(key, None)

        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        task = _asyncio.ensure_future(self._load_bundle(tag, include_local_overrides))
        self._in_flight[key] = _InFlight(task=task, generation=generation)

        try:
            bundle = await self._await_load(tag, task)
        finally:
            current = self._in_flight.get(key)
            if current is not None and current.generation == generation:
                del self._in_flight[key]

        if bundle is None:
            return TagBundle.empty(tag)
        if self._generations.get(key) == generation:
            self._cache[key] = _CacheEntry(bundle=bundle, timestamp=self._clock())
        else:
            _logger.debug("Discarding stale bundle for %s (generation %d)", tag, generation)
        return bundle

    async def fetch_config(self, force: bool = False) -> TagBundle:
        """
        Load the bundle for the active deployment.

        Fetches the root document, resolves the tag, remembers it as the
        active tag, and returns the tag's composed bundle. Any failure is
        logged and yields an empty bundle instead of raising.
        """
        try:
            root = await self.fetch_root_config(force)
            tag = self.resolve_tag(root)
            self._resolver.set_active_tag(tag)
            return await self.fetch_composed_for_tag(tag, force)
        except Exception as e:
            _logger.error("Error fetching configuration bundle: %s", e)
            return TagBundle.empty(self._resolver.get_active_tag())

    # =========================================================================
    # Cache management
    # =========================================================================

    def _bump(self, key: CacheKey) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

    def invalidate_tag(self, tag: str) -> None:
        """
        Drop cached bundles that depend on ``tag``.

        Every cached bundle whose ancestry contains the tag is removed, and
        loads in flight for it are marked stale.
        """
        for key, entry in list(self._cache.items()):
            if tag in entry.bundle.ancestry or key[0] == tag:
                del self._cache[key]
                self._bump(key)
        for key in list(self._in_flight):
            if key[0] == tag:
                del self._in_flight[key]
                self._bump(key)

    def clear_config_cache(self) -> None:
        """Forget every cached root document and bundle."""
        for key in list(self._cache) + list(self._in_flight):
            self._bump(key)
        self._cache.clear()
        self._in_flight.clear()
        self._root_config = None
        self._root_timestamp = 0.0
        self._root_task = None

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> ConfigClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
