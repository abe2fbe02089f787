"""Tests for base + override reconciliation helpers."""

import tagstack.overrides as overrides


class TestBuildIdMap:
    """Indexing items by id."""

    def test_last_duplicate_wins(self) -> None:
        result = overrides.build_id_map([{"id": "a", "v": 1}, {"id": "a", "v": 2}])
        assert result == {"a": {"id": "a", "v": 2}}

    def test_items_without_string_id_skipped(self) -> None:
        result = overrides.build_id_map([{"id": 1}, {"title": "x"}, "junk", {"id": "b"}])
        assert list(result) == ["b"]


class TestComposeWithOverrides:
    """Composing the effective list."""

    def test_override_substituted(self) -> None:
        base = [{"id": "a", "title": "X"}]
        result = overrides.compose_with_overrides(base, {"a": {"id": "a", "title": "Y"}}, [])

        assert result == [{"id": "a", "title": "Y"}]

    def test_deleted_ids_skipped(self) -> None:
        result = overrides.compose_with_overrides([{"id": "a"}, {"id": "b"}], {}, ["b"])
        assert result == [{"id": "a"}]

    def test_base_order_kept_and_new_items_appended(self) -> None:
        base = [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        override_map = {
            "new1": {"id": "new1"},
            "b": {"id": "b", "edited": True},
            "new2": {"id": "new2"},
        }

        result = overrides.compose_with_overrides(base, override_map, [])

        assert [item["id"] for item in result] == ["a", "b", "c", "new1", "new2"]
        assert result[1] == {"id": "b", "edited": True}

    def test_deleted_new_item_not_appended(self) -> None:
        result = overrides.compose_with_overrides([], {"n": {"id": "n"}}, ["n"])
        assert result == []

    def test_output_does_not_alias_inputs(self) -> None:
        base = [{"id": "a", "meta": {"x": 1}}]
        override_map = {"b": {"id": "b", "meta": {"y": 1}}}

        result = overrides.compose_with_overrides(base, override_map, [])
        result[0]["meta"]["x"] = 99
        result[1]["meta"]["y"] = 99

        assert base[0]["meta"]["x"] == 1
        assert override_map["b"]["meta"]["y"] == 1


class TestDeriveOverrides:
    """Recovering the sparse layer from a final list."""

    def test_deletions_changes_and_additions(self) -> None:
        base_map = {
            "a": {"id": "a", "title": "A"},
            "b": {"id": "b", "title": "B"},
            "c": {"id": "c", "title": "C"},
        }
        final = [
            {"id": "a", "title": "A"},
            {"id": "c", "title": "C2"},
            {"id": "d", "title": "D"},
        ]

        derived = overrides.derive_overrides_from_final(final, base_map)

        assert derived.deleted_ids == ["b"]
        assert derived.overrides_by_id == {
            "c": {"id": "c", "title": "C2"},
            "d": {"id": "d", "title": "D"},
        }

    def test_round_trip_reproduces_final(self) -> None:
        base = [{"id": "a", "n": 1}, {"id": "b", "n": 2}, {"id": "c", "n": 3}]
        final = [{"id": "a", "n": 1}, {"id": "c", "n": 30}, {"id": "z", "n": 26}]

        derived = overrides.derive_overrides_from_final(final, overrides.build_id_map(base))
        composed = overrides.compose_with_overrides(base, derived.overrides_by_id, derived.deleted_ids)

        assert composed == final

    def test_unchanged_final_is_empty(self) -> None:
        base = [{"id": "a", "n": 1}]
        derived = overrides.derive_overrides_from_final(base, overrides.build_id_map(base))

        assert derived.overrides_by_id == {}
        assert derived.deleted_ids == []


class TestUpsertOverrideMap:
    """Keeping the override map minimal."""

    def test_revert_to_base_drops_override(self) -> None:
        base_map = {"a": {"id": "a", "title": "A"}}
        current = {"a": {"id": "a", "title": "Edited"}}

        result = overrides.upsert_override_map(base_map, current, [{"id": "a", "title": "A"}])

        assert result == {}
        assert current == {"a": {"id": "a", "title": "Edited"}}

    def test_change_recorded(self) -> None:
        result = overrides.upsert_override_map({}, {}, [{"id": "n", "title": "New"}])
        assert result == {"n": {"id": "n", "title": "New"}}

    def test_items_without_id_ignored(self) -> None:
        assert overrides.upsert_override_map({}, {}, [{"title": "no id"}]) == {}


class TestIdListHelpers:
    """ensure_id_added / ensure_id_removed."""

    def test_added_once(self) -> None:
        assert overrides.ensure_id_added(["a"], "b") == ["a", "b"]
        assert overrides.ensure_id_added(["a", "b"], "a") == ["a", "b"]

    def test_removed(self) -> None:
        assert overrides.ensure_id_removed(["a", "b", "a"], "a") == ["b"]

    def test_empty_value_ignored(self) -> None:
        assert overrides.ensure_id_added(["a"], "") == ["a"]
        assert overrides.ensure_id_removed(["a"], "") == ["a"]


class TestLegacyAndSnapshotApplication:
    """Legacy reconciliation and in-place snapshot application."""

    def test_reconcile_legacy_against_new_base(self) -> None:
        legacy = [{"id": "a", "title": "Mine"}, {"id": "x", "title": "Local"}]
        base_map = {"a": {"id": "a", "title": "Base"}, "b": {"id": "b", "title": "B"}}

        derived = overrides.reconcile_legacy_final_items(legacy, base_map)

        assert derived.deleted_ids == ["b"]
        assert set(derived.overrides_by_id) == {"a", "x"}

    def test_reconcile_nothing(self) -> None:
        derived = overrides.reconcile_legacy_final_items(None, {"a": {"id": "a"}})
        assert derived.overrides_by_id == {}
        assert derived.deleted_ids == []

    def test_apply_snapshot_replaces_then_deletes(self) -> None:
        running = {"a": {"id": "a", "title": "A", "color": "red"}, "b": {"id": "b"}}

        overrides.apply_override_snapshot(
            running,
            {"a": {"id": "a", "title": "Local"}, "c": {"id": "c"}},
            ["b", "c"],
        )

        assert running == {"a": {"id": "a", "title": "Local"}}
