"""
Subtitle track lifecycle: registration, lazy fetching, format normalization,
offset synchronization and active-cue aggregation.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Callable, Dict, Optional, Sequence, Set

from strata.core.notifications import NotificationCenter
from strata.core.store import StateStore
from strata.exceptions import SubtitleLoadError
from strata.media.fetch import Fetcher
from strata.media.resource import MediaResource, TextTrack
from strata.models.state import SessionState, SubtitleTrackState, TextTrackConfig

from .formats import normalize_subtitle, parse_vtt

log = logging.getLogger(__name__)

OFFSET_EPSILON = 0.001


class SubtitleManager:
    """
    Owns the subtitle tracks of the current source.

    Track status moves idle -> loading -> success | error. A track is only
    fetched when it is first selected (or re-selected after an error); once it
    succeeded, re-selecting it activates the already attached text track.
    """

    FETCH_ATTEMPTS = 3
    FETCH_TIMEOUT = 20.0
    FETCH_RETRY_DELAY = 1.0

    def __init__(
        self,
        store: StateStore[SessionState],
        resource: MediaResource,
        fetcher: Fetcher,
        notifications: NotificationCenter,
    ):
        self.store = store
        self.resource = resource
        self.fetcher = fetcher
        self.notifications = notifications

        self._text_tracks: Dict[int, TextTrack] = {}
        # Offset currently baked into each attached track's cue times.
        self._applied_offsets: Dict[int, float] = {}
        self._active_index = -1
        self._unsubscribe_cues: Optional[Callable[[], None]] = None
        self._selection_serial = 0
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()
        # Default selection requested while no event loop was running.
        self._deferred_index = -1

    @property
    def active_track(self) -> Optional[TextTrack]:
        return self._text_tracks.get(self._active_index)

    # --- Registration ---

    def register_tracks(self, configs: Sequence[TextTrackConfig]) -> int:
        """
        Replaces the track list with idle entries and auto-selects the default.

        Returns:
            The index of the default track, or -1.
        """
        self.reset()
        tracks = tuple(
            SubtitleTrackState(
                src=config.src,
                label=config.label,
                src_lang=config.srclang,
                kind=config.kind,
                index=i,
                status="idle",
                is_default=config.default,
            )
            for i, config in enumerate(configs)
        )
        self.store.set(
            {
                "subtitle_tracks": tracks,
                "current_subtitle": -1,
                "subtitle_offset": 0.0,
                "active_cues": (),
            }
        )
        default_index = next((t.index for t in tracks if t.is_default), -1)
        if default_index >= 0:
            self._select_in_background(default_index)
        return default_index

    def add_track(self, config: TextTrackConfig) -> int:
        """Appends a subtitle track at runtime and returns its index."""
        index = len(self.store.get().subtitle_tracks)
        track = SubtitleTrackState(
            src=config.src,
            label=config.label,
            src_lang=config.srclang,
            kind=config.kind,
            index=index,
            status="idle",
            is_default=config.default,
        )
        self.store.set(lambda s: {"subtitle_tracks": s.subtitle_tracks + (track,)})
        log.debug(f"Added subtitle track {index}: {config.label}")
        if config.default:
            self._select_in_background(index)
        return index

    # --- Selection ---

    async def select(self, index: int) -> bool:
        """
        Activates the track at `index`, fetching it first if needed.

        Returns:
            True if the track is active afterwards (or `index` is -1).
        """
        tracks = self.store.get().subtitle_tracks
        if index != -1 and not 0 <= index < len(tracks):
            log.warning(f"Ignoring selection of unknown subtitle track {index}.")
            return False

        self._deferred_index = -1
        self._selection_serial += 1
        serial = self._selection_serial
        generation = self._generation

        self._deactivate()
        self.store.set(
            {"current_subtitle": index, "subtitle_offset": 0.0, "active_cues": ()}
        )
        if index == -1:
            return True

        track_state = tracks[index]
        if track_state.status in ("idle", "error") or index not in self._text_tracks:
            self._set_status(index, "loading")
            try:
                cues = await self._fetch_cues(track_state)
            except SubtitleLoadError as e:
                if generation != self._generation:
                    return False
                self._set_status(index, "error")
                log.warning(f"[yellow]Subtitle '{track_state.label}' failed: {e}[/yellow]")
                self.notifications.notify(
                    f"Failed to load subtitles: {track_state.label}",
                    type="warning",
                    duration=4,
                )
                if serial == self._selection_serial:
                    self.store.set({"current_subtitle": -1})
                return False

            # The track list was replaced while fetching.
            if generation != self._generation:
                return False
            self._text_tracks[index] = self.resource.add_text_track(
                track_state.label, track_state.src_lang, track_state.kind, cues
            )
            self._applied_offsets[index] = 0.0
            self._set_status(index, "success")

            # Another selection superseded this one while it was loading.
            if serial != self._selection_serial:
                return False

        self._activate(index)
        return True

    async def _fetch_cues(self, track_state: SubtitleTrackState):
        result = await self.fetcher.fetch_with_retry(
            track_state.src,
            attempts=self.FETCH_ATTEMPTS,
            timeout=self.FETCH_TIMEOUT,
            fixed_delay=self.FETCH_RETRY_DELAY,
        )
        if not result.ok:
            raise SubtitleLoadError(result.describe())
        cues = parse_vtt(normalize_subtitle(result.text))
        log.debug(f"Loaded {len(cues)} cues for subtitle '{track_state.label}'")
        return cues

    def _activate(self, index: int) -> None:
        text_track = self._text_tracks[index]
        # Cues still carry any offset applied during an earlier selection.
        baked = self._applied_offsets.get(index, 0.0)
        if abs(baked) >= OFFSET_EPSILON:
            self._shift_cues(text_track, -baked)
            self._applied_offsets[index] = 0.0
        # An offset set while the track was loading is only in state so far.
        offset = self.store.get().subtitle_offset
        if abs(offset) >= OFFSET_EPSILON:
            self._shift_cues(text_track, offset)
            self._applied_offsets[index] = offset

        self._active_index = index
        self._unsubscribe_cues = text_track.on("cuechange", self._on_cue_change)
        settings = self.store.get().subtitle_settings
        text_track.mode = "showing" if settings.use_native else "hidden"
        self._on_cue_change(text_track)

    def _deactivate(self) -> None:
        # Disabling every track stops background cue processing on the resource.
        for track in self.resource.text_tracks:
            track.mode = "disabled"
        if self._unsubscribe_cues is not None:
            self._unsubscribe_cues()
            self._unsubscribe_cues = None
        self._active_index = -1

    def _on_cue_change(self, track: TextTrack) -> None:
        self.store.set({"active_cues": tuple(cue.text for cue in track.active_cues)})

    def _set_status(self, index: int, status: str) -> None:
        def update(state: SessionState) -> Dict[str, Any]:
            tracks = list(state.subtitle_tracks)
            if index >= len(tracks):
                return {}
            tracks[index] = dataclasses.replace(tracks[index], status=status)
            return {"subtitle_tracks": tuple(tracks)}

        self.store.set(update)

    # --- Synchronization & rendering ---

    def set_offset(self, offset: float) -> None:
        """
        Shifts the active track's cues so they appear `offset` seconds later.

        The shift is applied relative to the current offset, so repeating the
        same value is a no-op.
        """
        delta = offset - self.store.get().subtitle_offset
        if abs(delta) < OFFSET_EPSILON:
            return
        track = self.active_track
        if track is not None:
            self._shift_cues(track, delta)
            self._applied_offsets[self._active_index] = offset
        self.store.set({"subtitle_offset": offset})
        log.debug(f"Subtitle offset set to {offset:+.3f}s")

    @staticmethod
    def _shift_cues(track: TextTrack, delta: float) -> None:
        for cue in track.cues:
            cue.start += delta
            cue.end += delta
        track.refresh()

    def update_customization(self, settings: Dict[str, Any]) -> None:
        """Merges rendering settings; toggling `use_native` re-applies the mode."""
        previous = self.store.get().subtitle_settings
        updated = previous.merged(settings)
        self.store.set({"subtitle_settings": updated})
        track = self.active_track
        if track is not None and updated.use_native != previous.use_native:
            track.mode = "showing" if updated.use_native else "hidden"

    # --- Lifecycle ---

    def _select_in_background(self, index: int) -> None:
        """
        Starts selecting `index` as a task on the running loop.

        Without a running loop the selection is kept until `wait_idle` runs it,
        so a synchronous `load` still completes.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred_index = index
            log.debug(f"No running event loop; deferring selection of track {index}.")
            return
        task = loop.create_task(self.select(index))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def has_deferred_selection(self) -> bool:
        return self._deferred_index != -1

    async def wait_idle(self) -> None:
        """Runs any deferred selection and waits for background selections."""
        if self._deferred_index != -1:
            index, self._deferred_index = self._deferred_index, -1
            await self.select(index)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self) -> None:
        """Detaches every text track from the resource."""
        self._generation += 1
        self._deferred_index = -1
        self._deactivate()
        if self._text_tracks:
            self.resource.remove_text_tracks()
        self._text_tracks.clear()
        self._applied_offsets.clear()

    def teardown(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        self.reset()
