"""
Active tag resolution and change notification.

Initial resolution order (first match wins):

1. ``?tag=`` query parameter of the page location
2. The tag persisted by the last ``set_active_tag``
3. The page hostname, sanitized
4. The configured fallback tag

The query parameter is re-read on every ``get_active_tag`` call, so a URL
carrying ``?tag=X`` pins the session to X regardless of stored state.
"""

from __future__ import annotations

import logging as _logging
import re as _re
import typing as _typing

import tagstack.constants as constants
import tagstack.storage as storage
import tagstack.tags.location as location_mod

_logger = _logging.getLogger(__name__)

_INVALID_TAG_CHARS = _re.compile(r"[^a-z0-9_-]")

TagChangeListener: _typing.TypeAlias = _typing.Callable[[str], None]


class TagResolutionError(Exception):
    """Raised when no tag can be resolved from any source."""

    pass


def sanitize_tag(raw: str | None) -> str | None:
    """
    Normalize a raw tag value.

    Lowercases and strips every character outside ``[a-z0-9_-]``.

    Returns:
        The sanitized tag, or None if nothing is left.
    """
    if not raw or not isinstance(raw, str):
        return None
    sanitized = _INVALID_TAG_CHARS.sub("", raw.lower())
    return sanitized or None


class TagResolver:
    """
    Tracks the active tag and broadcasts transitions.

    Listeners run synchronously, in registration order, once per
    transition. A failing listener is logged and does not stop the others.
    Listeners registered after a transition do not receive it.
    """

    def __init__(
        self,
        store: storage.KeyValueStore | None = None,
        location: location_mod.Location | None = None,
        *,
        query_param: str = constants.TAG_QUERY_PARAM,
        stored_key: str = constants.STORED_TAG_KEY,
        fallback: str = constants.DEFAULT_TAG_FALLBACK,
    ) -> None:
        """
        Initialize and resolve the starting tag.

        Args:
            store: Where the last active tag is remembered. None keeps it
                in memory only.
            location: Page location supplying query string and hostname.
            query_param: Query parameter naming a pinned tag.
            stored_key: Store key of the remembered tag.
            fallback: Tag used when nothing else resolves.
        """
        self._store = store if store is not None else storage.MemoryStore()
        self._location = location or location_mod.Location()
        self._query_param = query_param
        self._stored_key = stored_key
        self._fallback = sanitize_tag(fallback) or constants.DEFAULT_TAG_FALLBACK
        self._listeners: list[TagChangeListener] = []
        self._active_tag: str = (
            self.get_tag_override()
            or self.stored_tag()
            or self.hostname_tag()
            or self._fallback
        )

    @property
    def location(self) -> location_mod.Location:
        return self._location

    @property
    def fallback(self) -> str:
        return self._fallback

    def set_location(self, location: location_mod.Location) -> None:
        """Move the session to another page URL (e.g. a navigation)."""
        self._location = location

    def get_tag_override(self) -> str | None:
        """Tag pinned by the query string, if any."""
        return sanitize_tag(self._location.query_value(self._query_param))

    def stored_tag(self) -> str | None:
        """Tag remembered from a previous session, if any."""
        return sanitize_tag(self._store.get_item(self._stored_key))

    def hostname_tag(self) -> str | None:
        """Tag derived from the page hostname, if any."""
        return sanitize_tag(self._location.hostname)

    def get_active_tag(self) -> str:
        """
        Return the active tag.

        A query-string pin is checked live and adopted silently (without
        notifying listeners), matching a page load with that URL.
        """
        query_tag = self.get_tag_override()
        if query_tag and query_tag != self._active_tag:
            self._active_tag = query_tag
        return self._active_tag

    def set_active_tag(self, tag: str) -> None:
        """
        Make ``tag`` the active tag.

        The value is sanitized (falling back to the default tag when nothing
        valid remains). Setting the current tag is a no-op; otherwise the tag
        is persisted and every listener is notified.
        """
        sanitized = sanitize_tag(tag) or self._fallback
        if sanitized == self._active_tag:
            return
        previous = self._active_tag
        self._active_tag = sanitized
        self._store.set_item(self._stored_key, sanitized)
        _logger.info("Active tag changed: %s -> %s", previous, sanitized)
        self._notify(sanitized)

    def clear_stored_tag(self) -> None:
        """Forget the remembered tag (the active tag is unchanged)."""
        self._store.remove_item(self._stored_key)

    def on_tag_change(self, listener: TagChangeListener) -> _typing.Callable[[], None]:
        """
        Register a listener for tag transitions.

        Returns:
            A callable that unregisters the listener.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, tag: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(tag)
            except Exception as e:
                _logger.error("Tag change listener %r failed: %s", listener, e)
