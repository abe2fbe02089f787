"""
Search term matching.

A term is split on whitespace into lowercase tokens; a record matches when
every token occurs in at least one of its text fields.
"""

from __future__ import annotations

import collections.abc as _abc
import re as _re
import typing as _typing

_WHITESPACE = _re.compile(r"\s+")


def tokenize_search_term(term: str | None) -> list[str]:
    """Split a search term into lowercase tokens."""
    if not term:
        return []
    return [token.lower() for token in _WHITESPACE.split(term.strip()) if token]


def matches_search_tokens(
    tokens: _abc.Sequence[str],
    haystacks: _abc.Iterable[_typing.Any],
) -> bool:
    """
    Check that every token occurs in some haystack.

    Non-string and blank haystacks are ignored. No tokens matches anything;
    tokens with no usable haystack match nothing.
    """
    if not tokens:
        return True
    texts = [value.lower() for value in haystacks if isinstance(value, str) and value.strip()]
    if not texts:
        return False
    return all(any(token in text for text in texts) for token in tokens)


def filter_items(
    items: _abc.Iterable[dict[str, _typing.Any]],
    term: str | None,
    fields: _abc.Sequence[str],
) -> list[dict[str, _typing.Any]]:
    """Records whose ``fields`` match ``term`` (all records for a blank term)."""
    tokens = tokenize_search_term(term)
    if not tokens:
        return list(items)
    return [item for item in items if matches_search_tokens(tokens, (item.get(f) for f in fields))]
