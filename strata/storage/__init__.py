"""
Storage Layer.

This package handles all data persistence: the INI configuration file and the
saved user preferences of the player.
"""

from .config_manager import ConfigManager
from .settings_repository import SettingsRepository

__all__ = ["ConfigManager", "SettingsRepository"]
