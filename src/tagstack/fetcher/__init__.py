"""
Remote layer fetching and composition for tagstack.

Fetches each tag's documents, walks parent pointers up to a root, and
composes the chain into one bundle.
"""

from tagstack.fetcher.client import ConfigClient, TagBundle
from tagstack.fetcher.delta import (
    ChildDeltaFiles,
    build_child_delta_files,
    build_delta_archive,
    delta_items,
    write_delta_files,
)
from tagstack.fetcher.layers import (
    ComposedItems,
    Layer,
    LocalLayerOverrides,
    UpdatedStamps,
    compose_from_layers,
    compose_tag_config,
    layer_from_documents,
)
from tagstack.fetcher.results import FetchError, FetchErrorKind, FetchResult
from tagstack.fetcher.transport import DocumentTransport

__all__ = [
    "ChildDeltaFiles",
    "ComposedItems",
    "ConfigClient",
    "DocumentTransport",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "Layer",
    "LocalLayerOverrides",
    "TagBundle",
    "UpdatedStamps",
    "build_child_delta_files",
    "build_delta_archive",
    "compose_from_layers",
    "compose_tag_config",
    "delta_items",
    "layer_from_documents",
    "write_delta_files",
]
