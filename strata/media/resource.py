"""
The media resource abstraction the session drives.

A `MediaResource` stands in for whatever actually decodes and renders media in
the host environment. The session issues commands to it (`set_source`, `play`,
`seek`, ...) and the host reports what happened by dispatching media events
(`loadeddata`, `error`, `timeupdate`, ...). The base class is a complete
headless implementation; hosts subclass it to forward commands to a real
pipeline.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from strata.core.event_bus import EventBus
from strata.models.state import TimeRange

log = logging.getLogger(__name__)

# Media error codes, matching the usual host conventions.
MEDIA_ERR_ABORTED = 1
MEDIA_ERR_NETWORK = 2
MEDIA_ERR_DECODE = 3
MEDIA_ERR_SRC_NOT_SUPPORTED = 4

TRACK_MODES = ("disabled", "hidden", "showing")


@dataclass(frozen=True)
class MediaError:
    code: int
    message: str = ""


@dataclass
class Cue:
    """A timed text fragment. Times are mutable so offsets can shift them."""

    start: float
    end: float
    text: str
    id: str = ""

    def is_active(self, time: float) -> bool:
        return self.start <= time < self.end


class TextTrack:
    """A renderable text track attached to a media resource."""

    def __init__(
        self,
        label: str,
        language: str = "",
        kind: str = "subtitles",
        cues: Optional[Sequence[Cue]] = None,
    ):
        self.label = label
        self.language = language
        self.kind = kind
        self.cues: List[Cue] = list(cues or [])
        self.active_cues: List[Cue] = []
        self._mode = "disabled"
        self._time = 0.0
        self._events = EventBus()

    @property
    def mode(self) -> str:
        return self._mode

    @mode.setter
    def mode(self, value: str) -> None:
        if value not in TRACK_MODES:
            raise ValueError(f"Invalid text track mode: {value}")
        self._mode = value
        self.refresh()

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self._events.subscribe(event, handler)

    def update_time(self, time: float) -> None:
        self._time = time
        self.refresh()

    def refresh(self) -> None:
        """Recomputes the active cues and fires `cuechange` if they changed."""
        if self._mode == "disabled":
            active: List[Cue] = []
        else:
            active = [cue for cue in self.cues if cue.is_active(self._time)]
        if active != self.active_cues:
            self.active_cues = active
            if self._mode != "disabled":
                self._events.publish("cuechange", self)

    def detach(self) -> None:
        self._events.teardown()


class MediaResource:
    """A headless media element: holds playback state and dispatches events."""

    def __init__(self) -> None:
        self._events = EventBus()
        self.src = ""
        self.current_time = 0.0
        self.duration = 0.0
        self.paused = True
        self.volume = 1.0
        self.muted = False
        self.playback_rate = 1.0
        self.buffered: List[TimeRange] = []
        self.error: Optional[MediaError] = None
        self.text_tracks: List[TextTrack] = []

    # --- Event plumbing ---

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self._events.subscribe(event, handler)

    def once(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribes a handler that removes itself after its first call."""

        def wrapper(payload: Any) -> None:
            unsubscribe()
            handler(payload)

        unsubscribe = self._events.subscribe(event, wrapper)
        return unsubscribe

    def dispatch(self, event: str, payload: Any = None) -> None:
        self._events.publish(event, payload)

    # --- Commands issued by the session ---

    def set_source(self, url: str) -> None:
        self.src = url
        self.error = None
        self.current_time = 0.0
        self.duration = 0.0
        self.buffered = []
        log.debug(f"Media source set to {url or '<empty>'}")

    def play(self) -> None:
        if self.paused:
            self.paused = False
            self.dispatch("play")

    def pause(self) -> None:
        if not self.paused:
            self.paused = True
            self.dispatch("pause")

    def seek(self, time: float) -> None:
        self.report_time(time)
        self.dispatch("seeked", time)

    def set_volume(self, volume: float, muted: bool) -> None:
        self.volume = volume
        self.muted = muted
        self.dispatch("volumechange")

    def set_playback_rate(self, rate: float) -> None:
        self.playback_rate = rate
        self.dispatch("ratechange")

    def add_text_track(
        self,
        label: str,
        language: str = "",
        kind: str = "subtitles",
        cues: Optional[Sequence[Cue]] = None,
    ) -> TextTrack:
        track = TextTrack(label, language, kind, cues)
        track.update_time(self.current_time)
        self.text_tracks.append(track)
        self.dispatch("addtrack", track)
        return track

    def remove_text_tracks(self) -> None:
        for track in self.text_tracks:
            track.mode = "disabled"
            track.detach()
        self.text_tracks = []
        self.dispatch("removetrack")

    # --- Reports from the host ---

    def report_time(self, time: float) -> None:
        self.current_time = time
        for track in self.text_tracks:
            track.update_time(time)
        self.dispatch("timeupdate", time)

    def report_duration(self, duration: float) -> None:
        self.duration = duration if not math.isnan(duration) else 0.0
        self.dispatch("durationchange", self.duration)

    def report_buffered(self, ranges: Sequence[TimeRange]) -> None:
        self.buffered = list(ranges)
        self.dispatch("progress", self.buffered)

    def report_error(self, code: int, message: str = "") -> None:
        self.error = MediaError(code, message)
        self.dispatch("error", self.error)

    def destroy(self) -> None:
        self.pause()
        self.remove_text_tracks()
        self.set_source("")
        self._events.teardown()
