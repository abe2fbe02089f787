"""
CLI module for tagstack.

Provides the command-line interface using Click.
"""

from tagstack.cli.main import cli, main

__all__ = ["main", "cli"]
