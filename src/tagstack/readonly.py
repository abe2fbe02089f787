"""
Read-only data view for display.

Loads the active deployment's composed events and tips without any local
override layer. When nothing could be loaded the bundled default dataset is
shown instead, so a display is never blank.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import tagstack.defaults as defaults
import tagstack.fetcher as fetcher
import tagstack.overrides as overrides

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class ConfigData:
    """What a read-only display shows."""

    events: list[overrides.Entity]
    tips: list[overrides.Entity]
    from_defaults: bool = False
    """True when the bundled default dataset stands in for remote data."""

    @classmethod
    def fallback(cls) -> ConfigData:
        return cls(events=defaults.initial_events(), tips=defaults.initial_tips(), from_defaults=True)


class ConfigDataLoader:
    """
    Loads ConfigData, coalescing concurrent loads.

    Results are kept for reuse only while ``is_admin()`` returns True;
    other sessions always load fresh.
    """

    def __init__(
        self,
        client: fetcher.ConfigClient,
        is_admin: _typing.Callable[[], bool] = lambda: False,
    ) -> None:
        self._client = client
        self._is_admin = is_admin
        self._cached: ConfigData | None = None
        self._pending: _asyncio.Task[ConfigData] | None = None
        self.data = ConfigData.fallback()
        self.is_loaded = False
        self.error: Exception | None = None

    @property
    def events(self) -> list[overrides.Entity]:
        return self.data.events

    @property
    def tips(self) -> list[overrides.Entity]:
        return self.data.tips

    async def load(self, force: bool = False) -> ConfigData:
        """
        Load the data to display.

        Args:
            force: Skip both this loader's cache and the client's.

        Returns:
            The loaded data, or the default dataset.
        """
        if self._cached is not None and not force:
            self.data = self._cached
            self.is_loaded = True
            return self._cached
        if self._pending is not None and not self._pending.done():
            return await _asyncio.shield(self._pending)

        task = _asyncio.ensure_future(self._load(force))
        self._pending = task
        try:
            return await _asyncio.shield(task)
        finally:
            if self._pending is task:
                self._pending = None

    async def reload(self, force: bool = False) -> ConfigData:
        return await self.load(force)

    async def _load(self, force: bool) -> ConfigData:
        self.is_loaded = False
        try:
            bundle = await self._client.fetch_config(force)
            if bundle.is_empty():
                _logger.warning("No configuration loaded for %s; showing defaults", bundle.tag)
                data = ConfigData.fallback()
            else:
                data = ConfigData(events=bundle.events, tips=bundle.tips)
            self.error = None
        except Exception as e:
            _logger.error("Error loading configuration data: %s", e)
            self.error = e
            data = ConfigData.fallback()
        finally:
            self.is_loaded = True

        if self._is_admin():
            self._cached = data
        self.data = data
        return data
