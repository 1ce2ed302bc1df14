"""
Pydantic models for player configuration and subtitle rendering settings.
Provides robust validation for all settings.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Output formats that are real containers. A raw MPEG-TS stream written under
# one of these extensions produces a file most players refuse to open.
CONTAINER_FORMATS = {"mp4", "m4v", "mov", "mkv"}

OUTPUT_FORMATS = {
    "mp4": {"ext": "mp4", "mime": "video/mp4"},
    "m4v": {"ext": "m4v", "mime": "video/x-m4v"},
    "mov": {"ext": "mov", "mime": "video/quicktime"},
    "mkv": {"ext": "mkv", "mime": "video/x-matroska"},
    "ts": {"ext": "ts", "mime": "video/mp2t"},
}


def get_format_info(output_format: str) -> dict[str, str]:
    """Gets the extension and mime type for an output format."""
    return OUTPUT_FORMATS.get(output_format, {"ext": output_format, "mime": ""})


class SubtitleSettings(BaseModel):
    """Rendering preferences for subtitles. Instances are immutable."""

    text_size: int = 100  # percent
    text_color: str = "#ffffff"
    background_opacity: int = 75  # percent
    text_style: Literal["none", "outline", "raised", "depressed", "shadow"] = (
        "shadow"
    )
    vertical_offset: int = 40  # pixels from the bottom edge
    use_native: bool = False

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @field_validator("text_size")
    @classmethod
    def validate_text_size(cls, v: int) -> int:
        if v < 50 or v > 300:
            raise ValueError("Subtitle text size must be between 50% and 300%.")
        return v

    @field_validator("background_opacity")
    @classmethod
    def validate_opacity(cls, v: int) -> int:
        if v < 0 or v > 100:
            raise ValueError("Background opacity must be between 0 and 100.")
        return v

    def merged(self, updates: dict[str, Any]) -> "SubtitleSettings":
        """Returns a validated copy with `updates` applied."""
        return SubtitleSettings(**{**self.model_dump(), **updates})


class SavedPreferences(BaseModel):
    """Types and ranges of the preferences kept in the settings file."""

    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    is_muted: bool = False
    playback_rate: float = Field(default=1.0, gt=0.0)
    subtitle_settings: SubtitleSettings = Field(default_factory=SubtitleSettings)
    icon_size: str = "medium"
    theme_color: str = "#6366f1"
    theme: str = "default"
    is_live: bool = False
    is_looping: bool = False
    brightness: float = Field(default=1.0, ge=0.0)
    video_fit: str = "contain"


class PlayerConfig(BaseModel):
    """A validated configuration model for a playback session."""

    # Playback recovery
    max_retries: int = 5
    retry_base_delay: float = 1.5  # seconds, doubled per attempt

    # Network
    fetch_attempts: int = 3
    fetch_timeout: float = 20.0
    fetch_backoff_base: float = 1.0
    fetch_backoff_max: float = 8.0
    chunk_size: int = 131072  # 128 KB

    # Progress reporting
    progress_window: float = 5.0
    progress_interval: float = 0.8

    # Output
    download_dir: str = Field(default_factory=lambda: str(Path.cwd()))
    direct_write: bool = True

    # Preferences
    persist_settings: bool = True

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max retries must be between 1 and 10.")
        return v

    @field_validator("fetch_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Fetch attempts must be between 1 and 10.")
        return v

    @field_validator(
        "retry_base_delay",
        "fetch_timeout",
        "fetch_backoff_base",
        "progress_window",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Durations must be positive.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("Chunk size must be at least 1 KB.")
        return v

    @model_validator(mode="after")
    def validate_backoff(self) -> "PlayerConfig":
        if self.fetch_backoff_max < self.fetch_backoff_base:
            raise ValueError(
                "fetch_backoff_max cannot be smaller than fetch_backoff_base."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
