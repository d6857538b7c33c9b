"""CLI commands module."""

from . import config, sync

__all__ = ["sync", "config"]
