"""Events store."""

from __future__ import annotations

import collections.abc as _abc
import typing as _typing

import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.stores.base as base


class EventsStore(base.OverrideStore):
    """
    The active tag's events with local edits.

    Every event-specific operation changes one record's fields and then goes
    through the same upsert as ``update_event``.
    """

    kind = models.EntityKind.EVENTS
    search_fields = ("title", "description")

    @property
    def events(self) -> list[overrides.Entity]:
        return self.items

    @property
    def filtered_events(self) -> list[overrides.Entity]:
        return self.filtered

    @property
    def base_events(self) -> list[overrides.Entity]:
        return self.base_items

    @property
    def deleted_event_ids(self) -> list[str]:
        return self.deleted_ids

    @property
    def legacy_events(self) -> list[overrides.Entity] | None:
        return self.legacy_items

    @property
    def archived_events(self) -> list[overrides.Entity]:
        return [event for event in self.items if event.get("archived") is True]

    def set_events(self, events: _abc.Sequence[overrides.Entity], *, from_base: bool = False) -> None:
        self.set_items(events, from_base=from_base)

    def add_event(self, event: overrides.Entity) -> None:
        self.add_item(event)

    def update_event(self, event: overrides.Entity) -> None:
        self.update_item(event)

    def delete_event(self, event_id: str) -> None:
        self.delete_item(event_id)

    def delete_all_events(self) -> None:
        self.delete_all()

    async def reset_event_overrides(self, event_id: str) -> bool:
        return await self.reset_item_overrides(event_id)

    def archive_event(self, event_id: str) -> bool:
        return self._update_one(event_id, lambda event: {**event, "archived": True})

    def restore_event(self, event_id: str) -> bool:
        return self._update_one(event_id, lambda event: {**event, "archived": False})

    def reorder_events(self, ordered: _abc.Sequence[overrides.Entity], day: str) -> None:
        """
        Record the display order of events on one day.

        Each listed event gets ``order[day]`` set to its position. Events
        whose position did not change are left alone.
        """
        day = day.lower()
        for position, event in enumerate(ordered):
            event_id = overrides.item_id(event)
            if event_id is None:
                continue
            current = self.get_item(event_id)
            if current is None:
                continue
            order = current.get("order") if isinstance(current.get("order"), dict) else {}
            if order.get(day) == position:
                continue
            self._update_one(
                event_id,
                lambda item, position=position, order=order: {
                    **item,
                    "order": {**order, day: position},
                },
            )

    def update_date_override(
        self,
        event_id: str,
        date: str,
        override: _abc.Mapping[str, _typing.Any] | None,
    ) -> bool:
        """
        Add, extend, or remove (``override=None``) a per-date field override.
        """

        def change(event: overrides.Entity) -> overrides.Entity:
            date_overrides = dict(event.get("dateOverrides") or {})
            if override is None:
                date_overrides.pop(date, None)
            else:
                date_overrides[date] = {**(date_overrides.get(date) or {}), **override}
            return {**event, "dateOverrides": date_overrides}

        return self._update_one(event_id, change)

    def update_date_include_override(self, event_id: str, date: str, include: bool | None) -> bool:
        """Force an event on or off a date, or clear that (``include=None``)."""

        def change(event: overrides.Entity) -> overrides.Entity:
            includes = dict(event.get("dateIncludeOverrides") or {})
            if include is None:
                includes.pop(date, None)
            else:
                includes[date] = include
            return {**event, "dateIncludeOverrides": includes}

        return self._update_one(event_id, change)
