"""Tests for search term matching."""

import tagstack.utils as utils


class TestTokenize:
    """Search term tokenization."""

    def test_splits_and_lowercases(self) -> None:
        assert utils.tokenize_search_term("  Team   STANDUP\tmonday ") == ["team", "standup", "monday"]

    def test_blank_term(self) -> None:
        assert utils.tokenize_search_term("") == []
        assert utils.tokenize_search_term("   ") == []
        assert utils.tokenize_search_term(None) == []


class TestMatching:
    """Token matching across haystacks."""

    def test_all_tokens_must_match(self) -> None:
        tokens = ["team", "weekly"]
        assert utils.matches_search_tokens(tokens, ["Team sync", "Weekly review"])
        assert not utils.matches_search_tokens(tokens, ["Team sync", "Daily"])

    def test_no_tokens_matches_everything(self) -> None:
        assert utils.matches_search_tokens([], [])

    def test_non_string_haystacks_ignored(self) -> None:
        assert not utils.matches_search_tokens(["1"], [1, None, "   "])
        assert utils.matches_search_tokens(["abc"], [None, 42, "xABCx"])


class TestFilterItems:
    """Filtering records by search term."""

    ITEMS = [
        {"id": "e1", "title": "Standup", "description": "Daily team check-in"},
        {"id": "e2", "title": "Retro", "description": None},
        {"id": "e3", "title": 7},
    ]

    def test_blank_term_returns_all(self) -> None:
        assert utils.filter_items(self.ITEMS, " ", ("title",)) == self.ITEMS

    def test_matches_across_fields(self) -> None:
        result = utils.filter_items(self.ITEMS, "standup TEAM", ("title", "description"))
        assert [item["id"] for item in result] == ["e1"]

    def test_only_listed_fields_searched(self) -> None:
        assert utils.filter_items(self.ITEMS, "daily", ("title",)) == []
