"""
Per-tag local stores for tagstack.

One store per entity kind keeps a tag's composed records plus local edits,
persisting only the edits.
"""

from tagstack.stores.base import OverrideStore, StoreState
from tagstack.stores.cross_tag import CrossTagEditor
from tagstack.stores.events import EventsStore
from tagstack.stores.tips import TipsStore

__all__ = [
    "CrossTagEditor",
    "EventsStore",
    "OverrideStore",
    "StoreState",
    "TipsStore",
]
