"""Configuration for the productivity backend."""

from productivity.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
