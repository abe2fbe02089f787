"""Tips store."""

from __future__ import annotations

import collections.abc as _abc
import datetime as _datetime
import typing as _typing

import tagstack.models as models
import tagstack.overrides as overrides
import tagstack.stores.base as base


def _utc_now() -> str:
    return _datetime.datetime.now(_datetime.timezone.utc).isoformat()


class TipsStore(base.OverrideStore):
    """The active tag's tips with local edits."""

    kind = models.EntityKind.TIPS
    search_fields = ("title", "content")

    def __init__(
        self,
        *args: _typing.Any,
        clock: _typing.Callable[[], str] = _utc_now,
        **kwargs: _typing.Any,
    ) -> None:
        """
        Initialize the store.

        Args:
            clock: Returns the ISO timestamp recorded by ``mark_tip_as_used``.
            *args, **kwargs: Passed to OverrideStore.
        """
        self._now = clock
        super().__init__(*args, **kwargs)

    @property
    def tips(self) -> list[overrides.Entity]:
        return self.items

    @property
    def filtered_tips(self) -> list[overrides.Entity]:
        return self.filtered

    @property
    def base_tips(self) -> list[overrides.Entity]:
        return self.base_items

    @property
    def deleted_tip_ids(self) -> list[str]:
        return self.deleted_ids

    def set_tips(self, tips: _abc.Sequence[overrides.Entity], *, from_base: bool = False) -> None:
        self.set_items(tips, from_base=from_base)

    def add_tip(self, tip: overrides.Entity) -> None:
        self.add_item(tip)

    def update_tip(self, tip: overrides.Entity) -> None:
        self.update_item(tip)

    def delete_tip(self, tip_id: str) -> None:
        self.delete_item(tip_id)

    def delete_all_tips(self) -> None:
        self.delete_all()

    async def reset_tip_overrides(self, tip_id: str) -> bool:
        return await self.reset_item_overrides(tip_id)

    def mark_tip_as_used(self, tip_id: str) -> bool:
        """Stamp ``lastUsed`` and increment ``useCount``."""
        now = self._now()
        return self._update_one(
            tip_id,
            lambda tip: {
                **tip,
                "lastUsed": now,
                "useCount": (tip.get("useCount") or 0) + 1,
            },
        )

    def archive_tip(self, tip_id: str) -> bool:
        return self._update_one(tip_id, lambda tip: {**tip, "archived": True})

    def restore_tip(self, tip_id: str) -> bool:
        return self._update_one(tip_id, lambda tip: {**tip, "archived": False})
