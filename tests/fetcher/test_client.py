"""Tests for ConfigClient: ancestry, composition, caching and resolution."""

import asyncio as _asyncio
import typing as _typing

import httpx as _httpx
import pytest as _pytest

import tagstack.fetcher as fetcher
import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.storage as storage
import tagstack.tags as tags
import tests.conftest as conftest

ClientFactory: _typing.TypeAlias = _typing.Callable[..., fetcher.ConfigClient]


def _gate(server: conftest.DocumentServer) -> _asyncio.Event:
    """Hold every request until the returned event is set."""
    gate = _asyncio.Event()

    async def handler(request: _httpx.Request) -> _httpx.Response:
        await gate.wait()
        return server._handle(request)

    server.transport = _httpx.MockTransport(handler)
    return gate


class TestWalkAncestry:
    """Following parent pointers."""

    @_pytest.mark.asyncio
    async def test_root_first(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        assert await client.build_ancestry("leaf") == ["root", "mid", "leaf"]

    @_pytest.mark.asyncio
    async def test_cycle_truncated(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        caplog: _pytest.LogCaptureFixture,
    ) -> None:
        server.documents.update({"a/conf.json": {"parent": "b"}, "b/conf.json": {"parent": "a"}})

        ancestry = await client.build_ancestry("a")

        assert ancestry == ["b", "a"]
        assert "cycle" in caplog.text
        assert server.count("a/conf.json") == 1

    @_pytest.mark.asyncio
    async def test_self_parent(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        server.documents["a/conf.json"] = {"parent": "A"}
        assert await client.build_ancestry("a") == ["a"]

    @_pytest.mark.asyncio
    async def test_depth_limit(
        self,
        chain_server: conftest.DocumentServer,
        make_client: ClientFactory,
        caplog: _pytest.LogCaptureFixture,
    ) -> None:
        client = make_client(max_chain_depth=2)

        assert await client.build_ancestry("leaf") == ["mid", "leaf"]
        assert "exceeds 2 levels" in caplog.text

    @_pytest.mark.asyncio
    async def test_config_json_fallback(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        server.documents.update({"x/config.json": {"parent": "y"}, "y/conf.json": {"title": "Y"}})

        assert await client.build_ancestry("x") == ["y", "x"]

    @_pytest.mark.asyncio
    async def test_missing_tag_is_single_empty_layer(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        chain = await client.walk_ancestry("ghost")

        assert [layer.tag for layer in chain] == ["ghost"]
        assert chain[0].config is None
        assert chain[0].events == []


class TestComposeChain:
    """Composing a fetched chain into a bundle."""

    @_pytest.mark.asyncio
    async def test_chain_scenario(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        bundle = await client.compose_chain("leaf")

        assert bundle.tag == "leaf"
        assert bundle.ancestry == ["root", "mid", "leaf"]
        assert bundle.events == [
            {"id": "e1", "title": "B", "color": "red"},
            {"id": "e3", "title": "Leaf only"},
        ]
        assert bundle.tips == [{"id": "t1", "title": "Tip", "content": "Be kind"}]
        assert bundle.tag_config == {
            "title": "Leaf",
            "theme": {"color": "blue", "font": "serif"},
            "parent": "mid",
        }
        assert bundle.parent == "mid"
        assert bundle.updated.tag_config == "l1"
        assert bundle.updated.events == "re1"

    @_pytest.mark.asyncio
    async def test_archived_events_listed(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        server.documents.update(
            {
                "solo/events.json": {"events": [{"id": "a"}]},
                "solo/events_archive.json": {"events": [{"id": "old", "title": "Old"}]},
            }
        )

        bundle = await client.compose_chain("solo")

        assert bundle.archived_events == [{"id": "old", "title": "Old", "archived": True}]
        assert len(bundle.events) == 2

    @_pytest.mark.asyncio
    async def test_ancestor_local_overrides(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        scoped_storage: storage.ScopedStorage,
    ) -> None:
        scoped_storage.write_snapshot(
            "mid",
            models.EntityKind.EVENTS,
            overrides.OverrideSnapshot(overrides_by_id={"e1": {"id": "e1", "title": "Mid local"}}),
        )
        scoped_storage.write_snapshot(
            "leaf",
            models.EntityKind.EVENTS,
            overrides.OverrideSnapshot(deleted_ids=["e3"]),
        )

        with_local = await client.compose_chain("leaf", include_local_overrides=True)
        without = await client.compose_chain("leaf")

        # Leaf's own snapshot is never part of its base.
        assert with_local.events == [
            {"id": "e1", "title": "Mid local"},
            {"id": "e3", "title": "Leaf only"},
        ]
        assert without.events[0] == {"id": "e1", "title": "B", "color": "red"}

    @_pytest.mark.asyncio
    async def test_to_dict(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        data = (await client.compose_chain("root")).to_dict()

        assert data["tag"] == "root"
        assert data["tagConfig"] == {"title": "Root", "theme": {"color": "red", "font": "serif"}}
        assert data["ancestry"] == ["root"]
        assert set(data["updated"]) == {"root", "tagConfig", "events", "eventsArchive", "tips"}


class TestBundleCache:
    """fetch_composed_for_tag caching, coalescing and staleness."""

    @_pytest.mark.asyncio
    async def test_cached_until_ttl(
        self,
        chain_server: conftest.DocumentServer,
        make_client: ClientFactory,
    ) -> None:
        now = [0.0]
        client = make_client(cache_ttl=10, clock=lambda: now[0])

        first = await client.fetch_composed_for_tag("root")
        second = await client.fetch_composed_for_tag("root")
        assert second is first
        assert chain_server.count("root/events.json") == 1

        now[0] = 11.0
        await client.fetch_composed_for_tag("root")
        assert chain_server.count("root/events.json") == 2

    @_pytest.mark.asyncio
    async def test_concurrent_callers_share_one_walk(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        first, second = await _asyncio.gather(
            client.fetch_composed_for_tag("leaf"),
            client.fetch_composed_for_tag("leaf"),
        )

        assert first is second
        assert chain_server.count("leaf/events.json") == 1
        assert chain_server.count("root/events.json") == 1

    @_pytest.mark.asyncio
    async def test_force_refetches(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        await client.fetch_composed_for_tag("root")
        chain_server.documents["root/events.json"] = {"events": [{"id": "fresh"}]}

        bundle = await client.fetch_composed_for_tag("root", force=True)

        assert bundle.events == [{"id": "fresh"}]
        assert (await client.fetch_composed_for_tag("root")).events == [{"id": "fresh"}]

    @_pytest.mark.asyncio
    async def test_cache_keyed_by_local_flag(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        await client.fetch_composed_for_tag("root")
        await client.fetch_composed_for_tag("root", include_local_overrides=True)

        assert chain_server.count("root/events.json") == 2

    @_pytest.mark.asyncio
    async def test_invalidated_load_not_cached(
        self,
        chain_server: conftest.DocumentServer,
        make_client: ClientFactory,
    ) -> None:
        gate = _gate(chain_server)
        client = make_client()

        pending = _asyncio.ensure_future(client.fetch_composed_for_tag("root"))
        await _asyncio.sleep(0)
        client.invalidate_tag("root")
        gate.set()
        bundle = await pending

        # The superseded caller still gets its result; the cache does not.
        assert bundle.ancestry == ["root"]
        await client.fetch_composed_for_tag("root")
        assert chain_server.count("root/events.json") == 2

    @_pytest.mark.asyncio
    async def test_invalidate_ancestor_drops_descendants(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        await client.fetch_composed_for_tag("leaf")
        await client.fetch_composed_for_tag("root")

        client.invalidate_tag("mid")
        await client.fetch_composed_for_tag("leaf")
        await client.fetch_composed_for_tag("root")

        assert chain_server.count("leaf/events.json") == 2
        assert chain_server.count("root/events.json") == 3

    @_pytest.mark.asyncio
    async def test_clear_config_cache(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        await client.fetch_config()
        client.clear_config_cache()
        await client.fetch_config()

        assert chain_server.count("default.json") == 2
        assert chain_server.count("leaf/events.json") == 2

    @_pytest.mark.slow
    @_pytest.mark.asyncio
    async def test_timeout_returns_uncached_empty_bundle(
        self,
        chain_server: conftest.DocumentServer,
        make_client: ClientFactory,
        caplog: _pytest.LogCaptureFixture,
    ) -> None:
        gate = _gate(chain_server)
        client = make_client(bundle_timeout=0.05)

        bundle = await client.fetch_composed_for_tag("root")

        assert bundle.is_empty()
        assert bundle.tag == "root"
        assert "Timed out" in caplog.text

        gate.set()
        assert not (await client.fetch_composed_for_tag("root")).is_empty()

    @_pytest.mark.slow
    @_pytest.mark.asyncio
    async def test_timeout_shared_by_joined_callers(
        self,
        chain_server: conftest.DocumentServer,
        make_client: ClientFactory,
    ) -> None:
        gate = _gate(chain_server)
        client = make_client(bundle_timeout=0.05)

        results = await _asyncio.gather(
            client.fetch_composed_for_tag("root"),
            client.fetch_composed_for_tag("root"),
            return_exceptions=True,
        )

        assert all(isinstance(result, fetcher.TagBundle) for result in results)
        assert all(result.is_empty() for result in results)

        gate.set()
        assert not (await client.fetch_composed_for_tag("root")).is_empty()


class TestFetchConfig:
    """Top-level loading and tag resolution."""

    @_pytest.mark.asyncio
    async def test_domain_mapping(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        resolver: tags.TagResolver,
    ) -> None:
        bundle = await client.fetch_config()

        assert bundle.tag == "leaf"
        assert resolver.get_active_tag() == "leaf"
        assert resolver.stored_tag() == "leaf"
        assert bundle.updated.root == "2024-01-01"

    @_pytest.mark.asyncio
    async def test_query_pin_wins(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        resolver: tags.TagResolver,
    ) -> None:
        resolver.set_location(tags.Location("https://app.example.com/?tag=MID"))

        bundle = await client.fetch_config()

        assert bundle.tag == "mid"

    @_pytest.mark.asyncio
    async def test_default_tag(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        resolver: tags.TagResolver,
    ) -> None:
        resolver.set_location(tags.Location("https://elsewhere.example.com/"))
        assert (await client.fetch_config()).tag == "root"

    @_pytest.mark.asyncio
    async def test_stored_tag_last(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        resolver: tags.TagResolver,
    ) -> None:
        resolver.set_active_tag("remembered")
        assert client.resolve_tag({}) == "remembered"

    def test_unresolvable(self, client: fetcher.ConfigClient) -> None:
        with _pytest.raises(tags.TagResolutionError):
            client.resolve_tag({"domains": {"other.host": {"tag": "x"}}, "defaultTag": "!!"})

    @_pytest.mark.asyncio
    async def test_failure_yields_empty_bundle(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
        caplog: _pytest.LogCaptureFixture,
    ) -> None:
        """No root document and nothing stored: empty bundle, no exception."""
        bundle = await client.fetch_config()

        assert bundle.is_empty()
        assert bundle.tag == "appexamplecom"
        assert "Error fetching configuration bundle" in caplog.text

    @_pytest.mark.asyncio
    async def test_root_document_cached(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        await client.fetch_config()
        await client.fetch_config()
        assert chain_server.count("default.json") == 1

        await client.fetch_config(force=True)
        assert chain_server.count("default.json") == 2

    @_pytest.mark.asyncio
    async def test_non_object_root_ignored(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        server.documents["default.json"] = ["not", "an", "object"]
        assert await client.fetch_root_config() == {}
