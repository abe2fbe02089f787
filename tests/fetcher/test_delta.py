"""Tests for publish-time delta documents."""

import io as _io
import json as _json
import pathlib as _pathlib
import zipfile as _zipfile

import pytest as _pytest

import tagstack.fetcher as fetcher
import tests.conftest as conftest


class TestDeltaItems:
    """delta_items()."""

    def test_unchanged_field_omitted(self) -> None:
        parent = [{"id": "e1", "title": "A", "color": "red"}]
        effective = [{"id": "e1", "title": "B", "color": "red"}]

        assert fetcher.delta_items(parent, effective) == [{"id": "e1", "title": "B"}]

    def test_unchanged_record_omitted(self) -> None:
        items = [{"id": "e1", "title": "A"}]
        assert fetcher.delta_items(items, [dict(items[0])]) == []

    def test_new_record_whole_and_tombstones_last(self) -> None:
        parent = [{"id": "a"}, {"id": "b", "title": "B"}]
        effective = [{"id": "new", "title": "N"}, {"id": "a"}]

        assert fetcher.delta_items(parent, effective) == [
            {"id": "new", "title": "N"},
            {"id": "b", "deleted": True},
        ]

    def test_composing_delta_reproduces_effective(self) -> None:
        parent = [{"id": "a", "meta": {"x": 1, "y": 2}}, {"id": "b"}]
        effective = [{"id": "a", "meta": {"x": 1, "y": 3}}, {"id": "c", "v": 1}]

        delta = fetcher.delta_items(parent, effective)
        composed = fetcher.compose_from_layers(
            [
                fetcher.layer_from_documents("p", None, parent, None, None),
                fetcher.layer_from_documents("c", None, delta, None, None),
            ]
        )

        assert composed.events == effective


class TestBuildChildDeltaFiles:
    """build_child_delta_files() against a fetched chain."""

    @_pytest.mark.asyncio
    async def test_leaf_over_parent_chain(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        effective_events = [
            {"id": "e1", "title": "B2", "color": "red"},
            {"id": "e9", "title": "Brand new"},
        ]
        effective_tips = [{"id": "t1", "title": "Tip", "content": "Be kind"}]

        files = await fetcher.build_child_delta_files(
            client, effective_events, effective_tips, "leaf", updated="2024-05-01"
        )

        # Parent chain (root + mid) has e1 {title B, color red} and e2.
        assert files.events == [
            {"id": "e1", "title": "B2"},
            {"id": "e9", "title": "Brand new"},
            {"id": "e2", "deleted": True},
        ]
        assert files.tips == []
        assert files.config == {"parent": "mid", "title": "Leaf"}
        assert files.updated == "2024-05-01"

    @_pytest.mark.asyncio
    async def test_root_tag_emits_everything(
        self,
        chain_server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        files = await fetcher.build_child_delta_files(client, [{"id": "x"}], [], "root")

        assert files.events == [{"id": "x"}]
        assert files.config == {"title": "Root", "theme": {"color": "red", "font": "serif"}}
        assert files.updated

    @_pytest.mark.asyncio
    async def test_unpublished_tag(
        self,
        server: conftest.DocumentServer,
        client: fetcher.ConfigClient,
    ) -> None:
        files = await fetcher.build_child_delta_files(client, [], [{"id": "t"}], "fresh")

        assert files.config == {}
        assert files.tips == [{"id": "t"}]


class TestDeltaOutputs:
    """Writing documents to disk and zip."""

    FILES = fetcher.ChildDeltaFiles(
        tag="leaf",
        config={"parent": "mid"},
        events=[{"id": "e1", "title": "B"}],
        tips=[],
        updated="u1",
    )

    def test_documents(self) -> None:
        assert self.FILES.documents() == {
            "conf.json": {"updated": "u1", "parent": "mid"},
            "events.json": {"updated": "u1", "events": [{"id": "e1", "title": "B"}]},
            "tips.json": {"updated": "u1", "tips": []},
        }

    def test_write_delta_files(self, tmp_path: _pathlib.Path) -> None:
        written = fetcher.write_delta_files(self.FILES, tmp_path / "out")

        assert [path.name for path in written] == ["conf.json", "events.json", "tips.json"]
        assert _json.loads((tmp_path / "out" / "events.json").read_text())["events"] == [
            {"id": "e1", "title": "B"}
        ]

    def test_archive_layout(self) -> None:
        other = fetcher.ChildDeltaFiles(tag="mid", config={}, events=[], tips=[], updated="u2")

        data = fetcher.build_delta_archive([self.FILES, other])

        with _zipfile.ZipFile(_io.BytesIO(data)) as archive:
            names = sorted(archive.namelist())
            conf = _json.loads(archive.read("leaf/conf.json"))

        assert names == [
            "leaf/conf.json",
            "leaf/events.json",
            "leaf/tips.json",
            "mid/conf.json",
            "mid/events.json",
            "mid/tips.json",
        ]
        assert conf == {"updated": "u1", "parent": "mid"}

    def test_archive_single(self) -> None:
        with _zipfile.ZipFile(_io.BytesIO(fetcher.build_delta_archive(self.FILES))) as archive:
            assert len(archive.namelist()) == 3
