"""
Structural comparison and merge primitives for JSON-like values.

Three operations form the basis of every layer and override computation:

- deep_equal: structural equality (NaN equals NaN, key order ignored)
- deep_merge: apply a patch onto a base value
- compute_delta: the minimal patch that turns a base value into an edited one

Arrays are atomic for both merge and delta: a patch array replaces the base
array wholesale, and a changed array is emitted whole in a delta. Objects are
merged and diffed key by key.

Example:
    >>> base = {"id": "e1", "title": "A", "style": {"color": "red"}}
    >>> edited = {"id": "e1", "title": "B", "style": {"color": "red"}}
    >>> compute_delta(base, edited)
    {'title': 'B'}
    >>> deep_merge(base, {"title": "B"}) == edited
    True
"""

from __future__ import annotations

import copy as _copy
import math as _math
import typing as _typing


class _MissingType:
    """Sentinel type for a key that is absent (as opposed to holding null)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<MISSING>"


_MISSING = _MissingType()


def is_plain_object(value: _typing.Any) -> bool:
    """Return True for JSON objects (dicts)."""
    return isinstance(value, dict)


def is_array(value: _typing.Any) -> bool:
    """Return True for JSON arrays (lists, tolerating tuples)."""
    return isinstance(value, (list, tuple))


def clone_json(value: _typing.Any) -> _typing.Any:
    """Return an independent deep copy of a JSON-like value."""
    return _copy.deepcopy(value)


def deep_equal(a: _typing.Any, b: _typing.Any) -> bool:
    """
    Structural equality for JSON values.

    Objects compare by key set and per-key value, independent of key order.
    Arrays compare length, then elements in order. NaN equals NaN. Booleans
    never equal numbers, matching JSON typing rather than Python's
    ``True == 1``.

    Args:
        a: First value.
        b: Second value.

    Returns:
        True if both values are structurally identical.
    """
    if a is b:
        return True

    if is_array(a) and is_array(b):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b, strict=True))

    if is_plain_object(a) and is_plain_object(b):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b:
                return False
            if not deep_equal(value, b[key]):
                return False
        return True

    if is_array(a) or is_array(b) or is_plain_object(a) or is_plain_object(b):
        return False

    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b

    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        if isinstance(a, float) and isinstance(b, float) and _math.isnan(a) and _math.isnan(b):
            return True
        return a == b

    return bool(a == b)


def deep_merge(base: _typing.Any, patch: _typing.Any) -> _typing.Any:
    """
    Recursively merge ``patch`` onto ``base``.

    Rules, applied per key of ``patch``:

    - array values replace the base value wholesale (never element-merged)
    - object values merge recursively onto the base object, or onto an
      empty object when the base value is not an object
    - anything else (scalars, null) overrides the base value

    Neither input is modified. Keys of ``base`` absent from ``patch`` are
    carried over unchanged.

    Args:
        base: Value being patched. None is treated as absent.
        patch: Patch to apply. None returns ``base`` (or ``{}`` if base
            is also absent).

    Returns:
        The merged value.
    """
    if patch is None:
        return base if base is not None else {}
    if base is None:
        return clone_json(patch)
    if not is_plain_object(base) or not is_plain_object(patch):
        return clone_json(patch)

    out: dict[str, _typing.Any] = dict(base)
    for key, patch_value in patch.items():
        base_value = base.get(key)
        if is_array(patch_value):
            out[key] = clone_json(list(patch_value))
        elif is_plain_object(patch_value) and is_plain_object(base_value):
            out[key] = deep_merge(base_value, patch_value)
        elif is_plain_object(patch_value):
            out[key] = deep_merge({}, patch_value)
        else:
            out[key] = patch_value
    return out


def _delta(base: _typing.Any, edited: _typing.Any) -> _typing.Any:
    if edited is _MISSING:
        return _MISSING
    if base is _MISSING:
        return clone_json(edited)
    if deep_equal(base, edited):
        return _MISSING

    if is_array(edited):
        return clone_json(list(edited))

    if is_plain_object(edited) and is_plain_object(base):
        result: dict[str, _typing.Any] = {}
        keys = list(edited)
        keys.extend(key for key in base if key not in edited)
        for key in keys:
            child = _delta(base.get(key, _MISSING), edited.get(key, _MISSING))
            if child is not _MISSING:
                result[key] = child
        return result if result else _MISSING

    return clone_json(edited)


def compute_delta(base: _typing.Any, edited: _typing.Any) -> _typing.Any | None:
    """
    Compute the minimal patch turning ``base`` into ``edited``.

    ``deep_merge(base, compute_delta(base, edited))`` reconstructs ``edited``
    for every changed leaf. Keys removed in ``edited`` are not represented
    (a merge cannot delete), and a differing array is emitted whole.

    At the top level None means "absent": with no base the whole edited
    value is the delta, and with no edited value there is nothing to emit.

    Args:
        base: Original value (None = absent).
        edited: Edited value (None = absent).

    Returns:
        The delta, or None when ``edited`` needs no patch.
    """
    result = _delta(
        _MISSING if base is None else base,
        _MISSING if edited is None else edited,
    )
    return None if result is _MISSING else result
