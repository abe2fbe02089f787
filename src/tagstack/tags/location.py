"""
The page location a session runs at.

Stands in for the browser's ``window.location``: it supplies the query string
(for the ``?tag=`` pin) and the hostname (for domain-based tag resolution).
"""

from __future__ import annotations

import dataclasses as _dataclasses
import urllib.parse as _urlparse


@_dataclasses.dataclass(frozen=True)
class Location:
    """A parsed page URL. An empty URL has no query and no hostname."""

    url: str = ""

    @property
    def hostname(self) -> str:
        """Lowercased hostname, or empty string."""
        if not self.url:
            return ""
        return (_urlparse.urlsplit(self.url).hostname or "").lower()

    @property
    def origin(self) -> str:
        """``scheme://host[:port]``, or empty string for relative URLs."""
        if not self.url:
            return ""
        parts = _urlparse.urlsplit(self.url)
        if not parts.scheme or not parts.netloc:
            return ""
        return f"{parts.scheme}://{parts.netloc}"

    def query_value(self, name: str) -> str | None:
        """Return the first value of a query parameter, or None."""
        if not self.url:
            return None
        query = _urlparse.urlsplit(self.url).query
        if not query:
            return None
        values = _urlparse.parse_qs(query, keep_blank_values=True).get(name)
        return values[0] if values else None
