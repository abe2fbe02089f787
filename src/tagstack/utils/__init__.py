"""
Utility functions for tagstack.

General-purpose helpers that don't belong to a specific domain.
"""

import tagstack.utils.json_merge as json_merge
import tagstack.utils.search as search
from tagstack.utils.json_merge import (
    clone_json,
    compute_delta,
    deep_equal,
    deep_merge,
    is_array,
    is_plain_object,
)
from tagstack.utils.search import (
    filter_items,
    matches_search_tokens,
    tokenize_search_term,
)

__all__ = [
    "clone_json",
    "compute_delta",
    "deep_equal",
    "deep_merge",
    "filter_items",
    "is_array",
    "is_plain_object",
    "json_merge",
    "matches_search_tokens",
    "search",
    "tokenize_search_term",
]
