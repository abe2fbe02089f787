"""Tests for the tips store."""

import pytest as _pytest

import tagstack.fetcher as fetcher
import tagstack.storage as storage
import tagstack.stores as stores
import tests.conftest as conftest


@_pytest.fixture
def tips_store(
    chain_server: conftest.DocumentServer,
    client: fetcher.ConfigClient,
    scoped_storage: storage.ScopedStorage,
) -> stores.TipsStore:
    stamps = iter(["2024-05-01T08:00:00+00:00", "2024-05-02T08:00:00+00:00"])
    return stores.TipsStore(
        client,
        scoped_storage,
        tag="leaf",
        follow_active_tag=False,
        clock=lambda: next(stamps),
    )


class TestTipsStore:
    """Tip-specific operations."""

    @_pytest.mark.asyncio
    async def test_inherits_root_tips(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()

        assert tips_store.tips == [{"id": "t1", "title": "Tip", "content": "Be kind"}]
        assert tips_store.base_tips == tips_store.tips

    @_pytest.mark.asyncio
    async def test_mark_tip_as_used(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()

        assert tips_store.mark_tip_as_used("t1")
        assert tips_store.mark_tip_as_used("t1")

        tip = tips_store.get_item("t1")
        assert tip is not None
        assert tip["useCount"] == 2
        assert tip["lastUsed"] == "2024-05-02T08:00:00+00:00"
        assert set(tips_store.overrides_by_id) == {"t1"}

    @_pytest.mark.asyncio
    async def test_mark_missing_tip(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()
        assert not tips_store.mark_tip_as_used("nope")

    @_pytest.mark.asyncio
    async def test_archive_restore_delete(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()

        tips_store.archive_tip("t1")
        assert tips_store.get_item("t1")["archived"] is True
        tips_store.restore_tip("t1")
        assert tips_store.get_item("t1")["archived"] is False

        tips_store.delete_tip("t1")
        assert tips_store.deleted_tip_ids == ["t1"]
        assert tips_store.tips == []

    @_pytest.mark.asyncio
    async def test_search_content(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()
        tips_store.add_tip({"id": "t2", "title": "Other", "content": "Be brief"})

        tips_store.set_search_term("be kind")

        assert [tip["id"] for tip in tips_store.filtered_tips] == ["t1"]

    @_pytest.mark.asyncio
    async def test_reset_tip_overrides_without_parent_version(self, tips_store: stores.TipsStore) -> None:
        await tips_store.initialize_from_config()
        tips_store.add_tip({"id": "local"})

        assert not await tips_store.reset_tip_overrides("local")
        assert await tips_store.reset_tip_overrides("t1")
