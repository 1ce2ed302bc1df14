"""
Data Models Layer.

This package contains the Pydantic configuration models and the frozen
dataclasses that make up the session state snapshot.
"""

from .config import PlayerConfig, SubtitleSettings
from .state import (
    Notification,
    NotificationAction,
    PlayerSource,
    SessionState,
    SubtitleTrackState,
    TextTrackConfig,
)

__all__ = [
    "Notification",
    "NotificationAction",
    "PlayerConfig",
    "PlayerSource",
    "SessionState",
    "SubtitleSettings",
    "SubtitleTrackState",
    "TextTrackConfig",
]
