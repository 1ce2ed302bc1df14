"""
Data structures for the session state snapshot and the values it contains.

All snapshot types are frozen dataclasses: the only way to change state is to
replace it through the `StateStore`.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Literal, Optional, Tuple

from .config import SubtitleSettings

SourceType = Literal[
    "mp4", "webm", "ogg", "mp3", "hls", "dash", "mpegts", "webtorrent"
]
SubtitleStatus = Literal["idle", "loading", "success", "error"]
SourceStatus = Literal["success", "error"]
NotificationType = Literal["info", "success", "warning", "error", "loading"]

# Types the media resource can play without a plugin.
DIRECT_PLAYBACK_TYPES = frozenset({"mp4", "webm", "ogg", "mp3"})


@dataclass(frozen=True)
class TimeRange:
    start: float
    end: float


@dataclass(frozen=True)
class QualityLevel:
    height: int
    bitrate: int
    index: int


@dataclass(frozen=True)
class AudioTrack:
    label: str
    language: str
    index: int


@dataclass(frozen=True)
class PlayerSource:
    """A playable source. `original_url` is preferred for downloads."""

    url: str
    type: Optional[str] = None
    name: Optional[str] = None
    original_url: Optional[str] = None


@dataclass(frozen=True)
class TextTrackConfig:
    src: str
    label: str
    srclang: str = ""
    kind: str = "subtitles"
    default: bool = False


@dataclass(frozen=True)
class SubtitleTrackState:
    src: str
    label: str
    src_lang: str
    kind: str
    index: int
    status: SubtitleStatus = "idle"
    is_default: bool = False


@dataclass(frozen=True)
class NotificationAction:
    label: str
    callback: Callable[[], Any] = field(compare=False)


@dataclass(frozen=True)
class Notification:
    id: str
    message: str
    type: NotificationType = "info"
    duration: Optional[float] = None  # seconds; None means persistent
    progress: Optional[float] = None  # 0-100
    action: Optional[NotificationAction] = None


@dataclass(frozen=True)
class ThumbnailCue:
    start: float
    end: float
    url: str
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class SessionState:
    """The complete, immutable session snapshot."""

    # Playback
    is_playing: bool = False
    is_buffering: bool = False
    current_time: float = 0.0
    duration: float = 0.0
    buffered: Tuple[TimeRange, ...] = ()
    playback_rate: float = 1.0
    volume: float = 1.0
    is_muted: bool = False

    # Sources
    sources: Tuple[PlayerSource, ...] = ()
    current_source_index: int = -1
    source_statuses: Dict[int, SourceStatus] = field(default_factory=dict)

    # Quality / audio
    quality_levels: Tuple[QualityLevel, ...] = ()
    current_quality: int = -1
    audio_tracks: Tuple[AudioTrack, ...] = ()
    current_audio_track: int = -1

    # Subtitles
    subtitle_tracks: Tuple[SubtitleTrackState, ...] = ()
    current_subtitle: int = -1
    subtitle_offset: float = 0.0
    active_cues: Tuple[str, ...] = ()
    subtitle_settings: SubtitleSettings = field(default_factory=SubtitleSettings)
    thumbnails: Tuple[ThumbnailCue, ...] = ()

    # Presentation flags reported by the host
    is_fullscreen: bool = False
    is_pip: bool = False
    controls_visible: bool = True
    is_live: bool = False
    is_looping: bool = False
    brightness: float = 1.0
    video_fit: str = "contain"
    icon_size: str = "medium"
    theme: str = "default"
    theme_color: str = "#6366f1"

    # Diagnostics
    error: Optional[str] = None
    notifications: Tuple[Notification, ...] = ()


# Fields written to the settings repository on change.
PERSISTED_FIELDS = (
    "volume",
    "is_muted",
    "playback_rate",
    "subtitle_settings",
    "icon_size",
    "theme_color",
    "theme",
    "is_live",
    "is_looping",
    "brightness",
    "video_fit",
)
