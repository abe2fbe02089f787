"""
Typed outcome of a remote document fetch.

A fetch never raises past the transport boundary. It returns a FetchResult
holding either the decoded document or a FetchError describing why the
document is considered absent.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import typing as _typing

T = _typing.TypeVar("T")


class FetchErrorKind(str, _enum.Enum):
    """Why a document could not be used."""

    TRANSPORT = "transport"
    """Network failure (connection refused, DNS, protocol error)."""

    TIMEOUT = "timeout"
    """The request or the whole ancestry walk took too long."""

    STATUS = "status"
    """Non-2xx HTTP status."""

    CONTENT_TYPE = "content_type"
    """Response was not declared as JSON."""

    PARSE = "parse"
    """Body could not be decoded as JSON."""


class FetchError(Exception):
    """A document fetch failure. Carried in results, rarely raised."""

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.url = url
        self.status_code = status_code
        super().__init__(f"{kind.value} error fetching {url}: {message}")


@_dataclasses.dataclass(frozen=True)
class FetchResult(_typing.Generic[T]):
    """Either a fetched value or the error that prevented it."""

    value: T | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or_none(self) -> T | None:
        """The value, or None if the fetch failed (document treated as absent)."""
        return self.value if self.error is None else None

    @classmethod
    def success(cls, value: T) -> FetchResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: FetchError) -> FetchResult[T]:
        return cls(error=error)
