"""Configuration management for chronosync."""

from .settings import SyncSettings, load_settings

__all__ = ["SyncSettings", "load_settings"]
