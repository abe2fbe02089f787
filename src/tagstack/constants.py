"""
Shared constants for tagstack.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# Tag resolution defaults
DEFAULT_TAG_FALLBACK = "default"
"""Tag used when no query parameter, stored tag, or hostname yields one."""

TAG_QUERY_PARAM = "tag"
"""Query-string parameter that pins a session to a tag."""

STORED_TAG_KEY = "__config_active_tag"
"""Key-value store key remembering the last active tag."""

MAX_CHAIN_DEPTH = 16
"""Maximum number of tags walked when following parent pointers."""

# Remote document layout
DEFAULT_BASE_PATH = "/conf"
"""Path prefix of the remote documents when no config URL is set."""

ROOT_DOCUMENT = "default.json"
"""Root document mapping hostnames to tags."""

TAG_CONFIG_DOCUMENTS = ("conf.json", "config.json")
"""Tag config file names, tried in order."""

EVENTS_DOCUMENT = "events.json"
EVENTS_ARCHIVE_DOCUMENT = "events_archive.json"
TIPS_DOCUMENT = "tips.json"

CACHE_BUSTER_PARAM = "t"
"""Query parameter appended to every fetch to defeat HTTP caches."""

# Fetch behaviour defaults
DEFAULT_CACHE_TTL = 300.0
"""Seconds a composed bundle (and the root document) stays cached."""

DEFAULT_REQUEST_TIMEOUT = 10.0
"""Seconds before a single document request is abandoned."""

DEFAULT_BUNDLE_TIMEOUT = 30.0
"""Seconds before a whole ancestry walk is abandoned."""

# Local persistence
STORAGE_PREFIX = "lw-tools"
"""Prefix of every tag-scoped storage key."""

EVENTS_STORAGE_KEY = "daily-agenda-events"
TIPS_STORAGE_KEY = "daily-agenda-tips"
