"""Store module for Config-Sync."""

from .config_store import ConfigStore

__all__ = ["ConfigStore"]
