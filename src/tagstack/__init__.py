"""
tagstack - layered, tag-scoped configuration with local overrides.

Fetches per-tag JSON documents, follows parent pointers to compose an
inheritance chain into one bundle, and keeps each tag's local edits as a
sparse override layer on top of it.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("tagstack")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)

from tagstack.config import Settings  # noqa: E402
from tagstack.fetcher import ConfigClient, TagBundle  # noqa: E402
from tagstack.stores import EventsStore, TipsStore  # noqa: E402
from tagstack.tags import TagResolver  # noqa: E402

__all__ = [
    "__version__",
    "__version_info__",
    "ConfigClient",
    "EventsStore",
    "Settings",
    "TagBundle",
    "TagResolver",
    "TipsStore",
]
