"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with TAGSTACK_ prefix
3. .env file (if TAGSTACK_ENV_FILE points at one)
4. Layered YAML config files:
   - Project config: .tagstack/config.yaml (highest)
   - User config: ~/.config/tagstack/config.yaml
   - Built-in defaults: bundled defaults/config.yaml (lowest)

Nested config uses double underscore delimiter:
  TAGSTACK_FETCH__CONFIG_URL=https://example.com/conf
  TAGSTACK_TAGS__MAX_CHAIN_DEPTH=8
"""

import logging as _logging
import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import tagstack.config.sources as sources
import tagstack.config.types as types

_SECTIONS = ("fetch", "tags", "storage", "logging")


def _get_env_file() -> str | None:
    """Return TAGSTACK_ENV_FILE if it names an existing file."""
    if env_file := _os.environ.get("TAGSTACK_ENV_FILE"):
        if _pathlib.Path(env_file).exists():
            return env_file
    return None


def find_project_root(start_path: _pathlib.Path | None = None) -> _pathlib.Path | None:
    """
    Find the nearest directory holding a .tagstack/ config directory.

    Walks up from ``start_path`` (default: cwd).

    Returns:
        The directory, or None if no ancestor has one.
    """
    current = (start_path or _pathlib.Path.cwd()).resolve()
    while True:
        if (current / sources.PROJECT_CONFIG_DIR).is_dir():
            return current
        if current == current.parent:
            return None
        current = current.parent


class Settings(_pydantic_settings.BaseSettings):
    """
    tagstack configuration settings.

    All settings can be overridden via environment variables with TAGSTACK_
    prefix. For nested config, use double underscore:
    TAGSTACK_FETCH__TIMEOUT=5

    Config precedence (highest to lowest):
    1. Constructor arguments
    2. Environment variables (TAGSTACK_*)
    3. .env file
    4. Project config (.tagstack/config.yaml)
    5. User config (~/.config/tagstack/config.yaml)
    6. Built-in defaults
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="TAGSTACK_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # TAGSTACK_FETCH__TIMEOUT
        extra="allow",  # Preserve unknown fields for auditing
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[_pydantic_settings.BaseSettings],
        init_settings: _pydantic_settings.PydanticBaseSettingsSource,
        env_settings: _pydantic_settings.PydanticBaseSettingsSource,
        dotenv_settings: _pydantic_settings.PydanticBaseSettingsSource,
        file_secret_settings: _pydantic_settings.PydanticBaseSettingsSource,
    ) -> tuple[_pydantic_settings.PydanticBaseSettingsSource, ...]:
        """
        Configure settings sources with precedence:
        1. init_settings (constructor args) - highest
        2. env_settings (TAGSTACK_* env vars)
        3. dotenv_settings (.env file)
        4. yaml_settings (layered config.yaml files)
        5. (defaults via Field definitions) - lowest
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            sources.LayeredYamlSettingsSource(settings_cls, find_project_root()),
            file_secret_settings,
        )

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings without loading a .env file (test isolation)."""
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    # =========================================================================
    # Config version (for future migrations)
    # =========================================================================

    version: int = _pydantic.Field(default=1, description="Config schema version")

    # =========================================================================
    # Nested config sections
    # =========================================================================

    fetch: types.FetchConfig = _pydantic.Field(default_factory=types.FetchConfig)
    """Remote document location, timeouts, and cache lifetime."""

    tags: types.TagsConfig = _pydantic.Field(default_factory=types.TagsConfig)
    """Tag resolution inputs."""

    storage: types.StorageConfig = _pydantic.Field(default_factory=types.StorageConfig)
    """Local override persistence."""

    logging: types.LoggingConfig = _pydantic.Field(default_factory=types.LoggingConfig)
    """Logging settings."""

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def log_level(self) -> int:
        """Numeric logging level for the configured level name."""
        return _typing.cast(int, _logging.getLevelName(self.logging.level.upper()))

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Unknown keys at any level, as dotted paths."""
        result: dict[str, _typing.Any] = dict(self.model_extra or {})
        for name in _SECTIONS:
            section: types.ConfigBase = getattr(self, name)
            result.update(section.collect_all_extra_fields(name))
        return result

    def to_display_dict(self) -> dict[str, _typing.Any]:
        """Known settings as a plain dict (for `tagstack config show`)."""
        result: dict[str, _typing.Any] = {"version": self.version}
        for name in _SECTIONS:
            section: types.ConfigBase = getattr(self, name)
            result[name] = section.model_dump(exclude=set(section.get_extra_fields()))
        return result

