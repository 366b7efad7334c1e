"""Configuration loading."""

from dual_storage.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
