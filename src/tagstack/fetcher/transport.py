"""
HTTP access to the remote document layout.

Every request appends a cache-busting query parameter and asks for no
caching. Responses that are not 2xx, not declared as JSON, or not parseable
come back as failed FetchResults; nothing here raises.
"""

from __future__ import annotations

import logging as _logging
import time as _time
import typing as _typing

import httpx as _httpx

import tagstack.constants as constants
import tagstack.fetcher.results as results

_logger = _logging.getLogger(__name__)

NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "Accept": "application/json",
}


def with_cache_buster(url: str, stamp: int | None = None) -> str:
    """Append ``t=<milliseconds>`` to a URL, respecting an existing query."""
    if stamp is None:
        stamp = int(_time.time() * 1000)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{constants.CACHE_BUSTER_PARAM}={stamp}"


def join_url(base_url: str, segment: str) -> str:
    """Join a base URL and a document path with exactly one slash."""
    return f"{base_url.rstrip('/')}/{segment.lstrip('/')}"


class DocumentTransport:
    """
    Fetches JSON documents relative to a base URL.

    Owns an ``httpx.AsyncClient``; close it with ``aclose()`` or use the
    transport as an async context manager.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = constants.DEFAULT_REQUEST_TIMEOUT,
        transport: _httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: Absolute URL the document paths are relative to
                (e.g. ``https://example.com/conf``).
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._base_url = base_url
        self._client = _httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": "tagstack/1.0"},
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_url(self, segment: str) -> str:
        """Absolute, cache-busted URL for a document path."""
        return with_cache_buster(join_url(self._base_url, segment))

    async def fetch_json(self, segment: str) -> results.FetchResult[_typing.Any]:
        """
        Fetch and decode one JSON document.

        Args:
            segment: Document path, e.g. ``"s42/events.json"``.

        Returns:
            The decoded document, or the reason it is absent.
        """
        url = self.build_url(segment)
        try:
            response = await self._client.get(url, headers=NO_CACHE_HEADERS)
        except _httpx.TimeoutException as e:
            _logger.warning("Timed out fetching %s: %s", segment, e)
            return results.FetchResult.failure(
                results.FetchError(results.FetchErrorKind.TIMEOUT, url, str(e))
            )
        except (_httpx.HTTPError, _httpx.InvalidURL) as e:
            _logger.warning("Error fetching %s: %s", segment, e)
            return results.FetchResult.failure(
                results.FetchError(results.FetchErrorKind.TRANSPORT, url, str(e))
            )

        if not response.is_success:
            _logger.debug("Fetching %s returned HTTP %d", segment, response.status_code)
            return results.FetchResult.failure(
                results.FetchError(
                    results.FetchErrorKind.STATUS,
                    url,
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            )

        content_type = response.headers.get("content-type")
        if content_type and "application/json" not in content_type:
            _logger.debug("Ignoring %s: content type %s", segment, content_type)
            return results.FetchResult.failure(
                results.FetchError(
                    results.FetchErrorKind.CONTENT_TYPE,
                    url,
                    f"unexpected content type {content_type!r}",
                )
            )

        try:
            return results.FetchResult.success(response.json())
        except ValueError as e:
            _logger.warning("Invalid JSON in %s: %s", segment, e)
            return results.FetchResult.failure(
                results.FetchError(results.FetchErrorKind.PARSE, url, str(e))
            )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> DocumentTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
