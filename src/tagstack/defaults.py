"""
Minimal dataset shown when no configuration could be loaded.

Callers always get fresh copies, so mutating a returned record never
changes the defaults.
"""

from __future__ import annotations

import copy as _copy
import typing as _typing

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]

_INITIAL_EVENTS: list[dict[str, _typing.Any]] = [
    {
        "id": "default-1",
        "title": "Example Event",
        "description": "This is a default event that appears when the configuration cannot be loaded.",
        "isAllDay": True,
        "startTime": "09:00",
        "endTime": "10:00",
        "days": list(_WEEKDAYS),
        "includeInExport": {day: True for day in _WEEKDAYS},
        "variations": {},
        "dateOverrides": {},
        "dateIncludeOverrides": {},
        "order": {},
        "archived": False,
        "recurrence": {
            "type": "weekly",
            "daysOfWeek": list(_WEEKDAYS),
            "interval": 1,
        },
    },
]

_INITIAL_TIPS: list[dict[str, _typing.Any]] = [
    {
        "id": "default-tip-1",
        "title": "Default Tip",
        "content": "This is a default tip that appears when the configuration cannot be loaded.",
        "lastUsed": None,
    },
]


def initial_events() -> list[dict[str, _typing.Any]]:
    return _copy.deepcopy(_INITIAL_EVENTS)


def initial_tips() -> list[dict[str, _typing.Any]]:
    return _copy.deepcopy(_INITIAL_TIPS)
