"""Configuration management module."""

from .settings import EngineSettings, get_settings, reset_settings

__all__ = ["EngineSettings", "get_settings", "reset_settings"]
