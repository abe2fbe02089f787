"""Configuration type definitions for tagstack settings.

Each section model maps to one top-level YAML section:

- FetchConfig: where the remote documents live and how long to wait/cache
- TagsConfig: tag resolution inputs
- StorageConfig: where local override snapshots are kept
- LoggingConfig: log level and format

All types use `extra="allow"` so unknown keys are preserved and can be
reported by `tagstack config show --extras` instead of silently dropped.
"""

import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic

import tagstack.constants as constants
import tagstack.tags as tags

# =============================================================================
# Base class with introspection
# =============================================================================


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config types.

    Unknown fields are kept in `model_extra` rather than dropped, so typos
    can be audited.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Return fields that were provided but are not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect extra fields from this config and nested configs.

        Returns a flat dict with dotted paths as keys, e.g.
        ``{"fetch.timout": 5}``.
        """
        result: dict[str, _typing.Any] = {}
        for key, value in self.get_extra_fields().items():
            result[f"{prefix}.{key}" if prefix else key] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            if isinstance(value, ConfigBase):
                child_prefix = f"{prefix}.{field_name}" if prefix else field_name
                result.update(value.collect_all_extra_fields(child_prefix))
        return result


# =============================================================================
# Fetch Settings
# =============================================================================


class FetchConfig(ConfigBase):
    """
    Remote document settings.

    YAML section: fetch.*
    """

    config_url: str = ""
    """Absolute base URL of the documents. Empty = page origin + base_path."""

    base_path: str = constants.DEFAULT_BASE_PATH
    """Document path prefix used when deriving the base URL."""

    timeout: float = _pydantic.Field(default=constants.DEFAULT_REQUEST_TIMEOUT, gt=0)
    """Per-request timeout in seconds."""

    bundle_timeout: float | None = _pydantic.Field(
        default=constants.DEFAULT_BUNDLE_TIMEOUT, gt=0
    )
    """Timeout for one whole ancestry walk in seconds (null = unbounded)."""

    cache_ttl: float = _pydantic.Field(default=constants.DEFAULT_CACHE_TTL, ge=0)
    """Seconds the root document and composed bundles stay cached."""

    def resolve_base_url(self, location: tags.Location) -> str:
        """
        Return the base URL documents are fetched from.

        Raises:
            ValueError: If no config_url is set and the page location has
                no origin to derive one from.
        """
        if self.config_url:
            return self.config_url.rstrip("/")
        origin = location.origin
        if not origin:
            raise ValueError(
                "No fetch.config_url configured and tags.url has no origin to derive it from"
            )
        return f"{origin}/{self.base_path.strip('/')}".rstrip("/")


# =============================================================================
# Tag Settings
# =============================================================================


class TagsConfig(ConfigBase):
    """
    Tag resolution settings.

    YAML section: tags.*
    """

    url: str = ""
    """Page URL the session runs at (query string and hostname)."""

    query_param: str = constants.TAG_QUERY_PARAM
    """Query parameter that pins a tag."""

    stored_key: str = constants.STORED_TAG_KEY
    """Storage key remembering the last active tag."""

    fallback: str = constants.DEFAULT_TAG_FALLBACK
    """Tag used when nothing else resolves."""

    max_chain_depth: int = _pydantic.Field(default=constants.MAX_CHAIN_DEPTH, ge=1, le=256)
    """Maximum tags walked along parent pointers."""

    @property
    def location(self) -> tags.Location:
        return tags.Location(self.url)


# =============================================================================
# Storage Settings
# =============================================================================


class StorageConfig(ConfigBase):
    """
    Local persistence settings.

    YAML section: storage.*
    """

    path: str = "~/.local/share/tagstack/storage.json"
    """JSON file backing the key-value store (~ and env vars expanded)."""

    prefix: str = constants.STORAGE_PREFIX
    """Prefix of tag-scoped keys."""

    @property
    def resolved_path(self) -> _pathlib.Path:
        return _pathlib.Path(_os.path.expandvars(self.path)).expanduser()


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingConfig(ConfigBase):
    """
    Logging settings.

    YAML section: logging.*
    """

    level: _typing.Literal["debug", "info", "warning", "error"] = "warning"
    """Log level."""

    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    """Log record format."""
