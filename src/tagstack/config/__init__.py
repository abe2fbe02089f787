"""
Configuration module for tagstack.

Uses pydantic-settings for environment variable loading, layered over
bundled, user, and project YAML files.
"""

from tagstack.config.settings import Settings, find_project_root
from tagstack.config.sources import ConfigFileError, LayeredYamlSettingsSource

__all__ = ["ConfigFileError", "LayeredYamlSettingsSource", "Settings", "find_project_root"]
