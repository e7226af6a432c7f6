"""Application settings loading."""

from .app import SyncSettings, get_settings


__all__ = ["SyncSettings", "get_settings"]
