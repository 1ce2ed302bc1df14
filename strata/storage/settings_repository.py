"""
A simple JSON file store for user preferences that survive between sessions.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from strata.models.config import SavedPreferences, SubtitleSettings
from strata.models.state import PERSISTED_FIELDS, SessionState

log = logging.getLogger(__name__)

STORAGE_VERSION = 1


class SettingsRepository:
    """
    Reads and writes persisted preferences (volume, playback rate, subtitle
    settings, theme, ...). Only fields listed in `PERSISTED_FIELDS` are stored.
    """

    FILE_NAME = "settings.json"

    def __init__(self, settings_dir: Path):
        """
        Args:
            settings_dir: The directory where the settings file is stored.
        """
        self.path = settings_dir / self.FILE_NAME
        self._last_saved: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        """
        Returns the persisted preferences as state fields.

        Unknown keys, invalid values and unreadable files are ignored so a
        corrupt file never prevents a session from starting.
        """
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.warning(f"Could not read saved settings '{self.path}': {e}")
            return {}
        if not isinstance(data, dict):
            return {}

        values = data.get("settings", {})
        if not isinstance(values, dict):
            return {}
        settings: Dict[str, Any] = {}
        for key in PERSISTED_FIELDS:
            if key not in values:
                continue
            try:
                checked = SavedPreferences.model_validate({key: values[key]})
            except ValidationError as e:
                log.debug(f"Ignoring invalid saved value for '{key}': {e}")
                continue
            settings[key] = getattr(checked, key)
        self._last_saved = self._serialize_values(settings)
        return settings

    def save_state(self, state: SessionState) -> bool:
        """
        Persists the preference fields of `state` if they changed since the last
        write.

        Returns:
            True if the file was written.
        """
        values = self._serialize_values(
            {key: getattr(state, key) for key in PERSISTED_FIELDS}
        )
        if values == self._last_saved:
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump({"version": STORAGE_VERSION, "settings": values}, f)
        except (TypeError, OSError) as e:
            log.warning(f"Could not save settings to '{self.path}': {e}")
            return False
        self._last_saved = values
        return True

    @staticmethod
    def _serialize_values(values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: value.model_dump() if isinstance(value, SubtitleSettings) else value
            for key, value in values.items()
        }

    def clear(self) -> bool:
        """Removes the settings file."""
        try:
            self.path.unlink(missing_ok=True)
            self._last_saved = None
            return True
        except OSError as e:
            log.error(f"Failed to clear saved settings: {e}")
            return False
