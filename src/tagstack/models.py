"""
Entity schemas for events and tips.

The composition engine is generic over dicts carrying a string ``id``. These
pydantic models only guard the ingest boundary: remote documents are
validated record by record, malformed records are dropped with a warning,
and valid ones are passed on exactly as they were written (camelCase keys,
unknown keys kept, nothing defaulted in).

Every domain field is optional because child layers carry partial records
(deltas and tombstones), not complete entities.
"""

from __future__ import annotations

import collections.abc as _abc
import enum as _enum
import logging as _logging
import typing as _typing

import pydantic as _pydantic
import pydantic.alias_generators as _alias_generators

import tagstack.constants as constants

_logger = _logging.getLogger(__name__)


class EntityKind(str, _enum.Enum):
    """The two entity collections a tag publishes."""

    EVENTS = "events"
    TIPS = "tips"

    @property
    def storage_key(self) -> str:
        """Key under which a tag's override snapshot is stored."""
        if self is EntityKind.EVENTS:
            return constants.EVENTS_STORAGE_KEY
        return constants.TIPS_STORAGE_KEY

    @property
    def model(self) -> type[EntityBase]:
        """Schema used to validate records of this kind."""
        if self is EntityKind.EVENTS:
            return Event
        return Tip


class EntityBase(_pydantic.BaseModel):
    """Fields shared by every entity."""

    model_config = _pydantic.ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=_alias_generators.to_camel,
    )

    id: str = _pydantic.Field(min_length=1)
    deleted: bool | None = None
    archived: bool | None = None
    updated: str | None = None


class Recurrence(_pydantic.BaseModel):
    """Recurrence rule. Evaluated elsewhere; only its shape is checked here."""

    model_config = _pydantic.ConfigDict(extra="allow")

    type: str | None = None
    pattern: str | None = None
    interval: int | None = None
    end_date: str | None = _pydantic.Field(default=None, alias="endDate")
    count: int | None = None


class Event(EntityBase):
    """A scheduled event."""

    title: str | None = None
    description: str | None = None
    days: list[str] | None = None
    start_time: str | None = None
    end_time: str | None = None
    is_all_day: bool | None = None
    color: str | None = None
    remind_tomorrow: bool | None = None
    remind_end_of_day: bool | None = None
    recurrence: Recurrence | None = None
    variations: dict[str, dict[str, _typing.Any]] | None = None
    date_overrides: dict[str, dict[str, _typing.Any]] | None = None
    date_include_overrides: dict[str, bool] | None = None
    include_in_export: dict[str, bool] | None = None
    order: dict[str, int] | None = None


class Tip(EntityBase):
    """An intel snippet."""

    title: str | None = None
    content: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    last_used: str | None = None
    use_count: int | None = None
    custom_id: str | None = None
    image_url: str | None = None
    admin_only: bool | None = None
    can_use_in_briefing: bool | None = None
    unlisted: bool | None = None
    is_html: bool | None = None
    alt_text: str | None = None
    type: _typing.Literal["text", "html", "image", "embedded"] | None = None
    embed_url: str | None = None


def validate_items(
    kind: EntityKind,
    items: _abc.Iterable[_typing.Any],
    *,
    source: str = "",
) -> list[dict[str, _typing.Any]]:
    """
    Validate raw records, keeping the valid ones as plain dicts.

    Valid records are returned unchanged (same keys, same values); the model
    is only used as a check. Invalid records are logged and skipped.

    Args:
        kind: Entity kind, selecting the schema.
        items: Raw decoded JSON records.
        source: Description used in log messages (e.g. the document path).

    Returns:
        The valid records.
    """
    model = kind.model
    valid: list[dict[str, _typing.Any]] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            _logger.warning("Skipping non-object %s record #%d in %s", kind.value, index, source)
            continue
        try:
            model.model_validate(item)
        except _pydantic.ValidationError as e:
            _logger.warning(
                "Skipping invalid %s record #%d (id=%r) in %s: %s",
                kind.value,
                index,
                item.get("id"),
                source,
                e.errors(include_url=False),
            )
            continue
        valid.append(item)
    return valid
