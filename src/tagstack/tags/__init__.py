"""
Tag resolution for tagstack.

Decides which tenant ("tag") a session belongs to and notifies
subscribers when it changes.
"""

from tagstack.tags.location import Location
from tagstack.tags.resolver import (
    TagChangeListener,
    TagResolutionError,
    TagResolver,
    sanitize_tag,
)

__all__ = [
    "Location",
    "TagChangeListener",
    "TagResolutionError",
    "TagResolver",
    "sanitize_tag",
]
