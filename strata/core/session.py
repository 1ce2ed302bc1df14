"""
The session orchestrator.

A `Session` owns the state store and event bus, wires the media resource's
events into state, and delegates to the retry controller, subtitle manager and
download engine. It is the only thing a host or presentation layer talks to.
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Union,
)

from strata.exceptions import PlaybackError, UnsupportedSourceError
from strata.media.downloader import Downloader
from strata.media.fetch import Fetcher
from strata.media.resource import MediaError, MediaResource
from strata.models.config import PlayerConfig
from strata.models.state import (
    DIRECT_PLAYBACK_TYPES,
    PERSISTED_FIELDS,
    NotificationAction,
    NotificationType,
    PlayerSource,
    SessionState,
    TextTrackConfig,
)
from strata.storage.settings_repository import SettingsRepository
from strata.subtitles.manager import SubtitleManager
from strata.subtitles.thumbnails import parse_thumbnail_vtt
from strata.utils.path import classify_source_type

from .event_bus import EventBus
from .notifications import NotificationCenter
from .plugin import Plugin
from .retry import RetryController
from .scheduler import Scheduler
from .store import StateStore

log = logging.getLogger(__name__)

SourceLike = Union[str, PlayerSource]


class Session:
    """
    Coordinates a single playback session.

    State flows one way: the host reports what the media resource did by
    dispatching events on it, the session turns those into state merges and
    lifecycle events, and commands (`play`, `seek`, `load`, ...) go back to the
    resource. Formats the resource cannot play directly are left to plugins
    listening on the `load` channel.
    """

    def __init__(
        self,
        config: Optional[PlayerConfig] = None,
        resource: Optional[MediaResource] = None,
        fetcher: Optional[Fetcher] = None,
        settings: Optional[SettingsRepository] = None,
        scheduler: Optional[Scheduler] = None,
        open_url: Optional[Callable[[str], object]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            config: Player configuration; defaults are used when omitted.
            resource: The media resource to drive. A headless one is created
                when omitted.
            fetcher: HTTP transport shared by subtitles, thumbnails and
                downloads.
            settings: Where user preferences are persisted. Nothing is
                persisted without one.
            scheduler: Timer source for retries and notification dismissal.
            open_url: Fallback used when a progressive download fails.
            clock: Millisecond clock for download progress estimation.
        """
        self.config = config or PlayerConfig()
        self.resource = resource or MediaResource()
        self.fetcher = fetcher or Fetcher.from_config(self.config)
        self.settings = settings if self.config.persist_settings else None
        self.scheduler = scheduler or Scheduler()

        initial = SessionState()
        if self.settings is not None:
            saved = self.settings.load()
            if saved:
                initial = SessionState(**saved)
                log.debug(f"Restored saved settings: {', '.join(sorted(saved))}")

        self.store: StateStore[SessionState] = StateStore(initial)
        self.events = EventBus()
        self.notifications = NotificationCenter(self.store, self.scheduler)
        self.retry = RetryController(
            self.store,
            self.events,
            self.notifications,
            self.scheduler,
            reload=self._reload_current,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
        )
        self.subtitles = SubtitleManager(
            self.store, self.resource, self.fetcher, self.notifications
        )
        self.downloader = Downloader(
            self.fetcher,
            self.notifications,
            self.config,
            open_url=open_url,
            clock=clock,
        )

        self.plugins: Dict[str, Plugin] = {}
        self._track_configs: List[TextTrackConfig] = []
        self._subscriptions: List[Callable[[], None]] = []
        self._cancel_resume: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()
        self._ready_fired = False
        self._destroyed = False

        self.resource.set_volume(initial.volume, initial.is_muted)
        self.resource.set_playback_rate(initial.playback_rate)

        self._wire_resource()
        if self.settings is not None:
            self._subscriptions.append(self.store.subscribe(self._persist))

    # --- Wiring ---

    def _wire_resource(self) -> None:
        s = self.store.set
        r = self.resource
        handlers: Dict[str, Callable[[Any], None]] = {
            "play": lambda _: self._on_play_state(True, "play"),
            "pause": lambda _: self._on_play_state(False, "pause"),
            "ended": lambda _: self._on_play_state(False, "ended"),
            "waiting": lambda _: self._on_buffering(True),
            "playing": lambda _: self._on_buffering(False),
            "loadeddata": lambda _: self._on_loaded_data(),
            "canplay": lambda _: self._on_can_play(),
            "timeupdate": lambda _: s({"current_time": r.current_time}),
            "durationchange": lambda _: s({"duration": r.duration}),
            "volumechange": lambda _: s({"volume": r.volume, "is_muted": r.muted}),
            "ratechange": lambda _: s({"playback_rate": r.playback_rate}),
            "progress": lambda _: s({"buffered": tuple(r.buffered)}),
            "error": self._on_media_error,
        }
        for event, handler in handlers.items():
            self._subscriptions.append(r.on(event, handler))

    def _on_play_state(self, is_playing: bool, event: str) -> None:
        self.store.set({"is_playing": is_playing})
        self.events.publish(event)

    def _on_buffering(self, is_buffering: bool) -> None:
        self.store.set({"is_buffering": is_buffering})
        self.events.publish("loading", is_buffering)

    def _on_loaded_data(self) -> None:
        self.retry.reset()
        self._set_source_status("success", is_buffering=False)

    def _on_can_play(self) -> None:
        if not self._ready_fired:
            self._ready_fired = True
            self.events.publish("ready")

    def _on_media_error(self, error: Optional[MediaError]) -> None:
        message = error.message if error is not None and error.message else ""
        if error is not None:
            log.debug(f"Media error {error.code}: {message or '<no message>'}")
        self.retry.handle_fatal_error(message)

    def _set_source_status(self, status: str, **extra: Any) -> None:
        def update(state: SessionState) -> dict:
            values = dict(extra)
            if state.current_source_index >= 0:
                statuses = dict(state.source_statuses)
                statuses[state.current_source_index] = status
                values["source_statuses"] = statuses
            return values

        self.store.set(update)

    def _persist(self, state: SessionState, prev: SessionState) -> None:
        if any(getattr(state, key) != getattr(prev, key) for key in PERSISTED_FIELDS):
            self.settings.save_state(state)

    # --- Plugins ---

    def use(self, plugin: Plugin) -> None:
        """Attaches a format plugin. A plugin name is only registered once."""
        if plugin.name in self.plugins:
            log.debug(f"Plugin '{plugin.name}' already registered.")
            return
        plugin.init(self)
        self.plugins[plugin.name] = plugin
        log.debug(f"Plugin '{plugin.name}' registered.")

    # --- Sources ---

    def load(
        self,
        source: SourceLike,
        tracks: Optional[Sequence[TextTrackConfig]] = None,
        is_retry: bool = False,
    ) -> PlayerSource:
        """
        Loads a source. This is the single entry point for every source change.

        Args:
            source: A URL or a `PlayerSource`.
            tracks: Subtitle tracks for the source. When omitted, a retry keeps
                the current tracks and a fresh load clears them.
            is_retry: Set by the retry controller; keeps the retry streak.

        Returns:
            The normalized source.
        """
        self.retry.cancel()
        if isinstance(source, str):
            source = PlayerSource(url=source)
        if not source.url:
            raise UnsupportedSourceError("Cannot load an empty source URL.")

        if not is_retry:
            self.retry.reset()
            self._clear_resume()
            self._ready_fired = False
        if tracks is not None:
            self._track_configs = list(tracks)
        elif not is_retry:
            self._track_configs = []

        source_type = source.type or classify_source_type(source.url)

        def update(state: SessionState) -> dict:
            sources = state.sources
            statuses = dict(state.source_statuses)
            index = next(
                (i for i, known in enumerate(sources) if known.url == source.url), -1
            )
            if index == -1:
                sources = (source,)
                statuses = {}
                index = 0
            # Pending until the resource reports success or error.
            statuses.pop(index, None)
            values = {
                "sources": sources,
                "current_source_index": index,
                "source_statuses": statuses,
                "is_buffering": True,
                "quality_levels": (),
                "current_quality": -1,
                "audio_tracks": (),
                "current_audio_track": -1,
            }
            if not is_retry:
                values["error"] = None
            return values

        self.store.set(update)
        log.info(f"Loading {source_type} source: {source.url}")
        self.events.publish("load", {"url": source.url, "type": source_type})

        self.subtitles.register_tracks(self._track_configs)

        if source_type in DIRECT_PLAYBACK_TYPES:
            self.resource.set_source(source.url)
        else:
            # Claimed by a plugin listening on the `load` channel.
            self.resource.set_source("")
            if not self.events.has_subscribers("load"):
                log.warning(
                    f"[yellow]No plugin is listening for '{source_type}' sources."
                    "[/yellow]"
                )
        return source

    def _reload_current(self) -> None:
        state = self.store.get()
        index = state.current_source_index
        if not 0 <= index < len(state.sources):
            return
        resume_at = state.current_time
        source = self.load(state.sources[index], is_retry=True)
        if resume_at > 0:
            self._resume_on_canplay(source.url, lambda: self.seek(resume_at))

    def _resume_on_canplay(self, url: str, resume: Callable[[], None]) -> None:
        """Runs `resume` at the next `canplay`, if `url` is still the current source."""
        self._clear_resume()

        def on_canplay(_: Any) -> None:
            self._cancel_resume = None
            state = self.store.get()
            index = state.current_source_index
            if 0 <= index < len(state.sources) and state.sources[index].url == url:
                resume()

        self._cancel_resume = self.resource.once("canplay", on_canplay)

    def _clear_resume(self) -> None:
        if self._cancel_resume is not None:
            self._cancel_resume()
            self._cancel_resume = None

    def set_sources(
        self,
        sources: Sequence[SourceLike],
        tracks: Optional[Sequence[TextTrackConfig]] = None,
    ) -> None:
        """Replaces the source list and loads the first entry."""
        normalized = tuple(
            PlayerSource(url=s) if isinstance(s, str) else s for s in sources
        )
        self.store.set(
            {"sources": normalized, "current_source_index": -1, "source_statuses": {}}
        )
        if normalized:
            self.load(normalized[0], tracks or [])

    def switch_source(self, index: int) -> bool:
        """Loads another entry of the source list, resuming at the same time."""
        state = self.store.get()
        if not 0 <= index < len(state.sources):
            log.warning(f"Ignoring switch to unknown source {index}.")
            return False
        resume_at = state.current_time
        was_playing = state.is_playing
        source = self.load(state.sources[index], self._track_configs)

        def resume() -> None:
            if resume_at > 0:
                self.seek(resume_at)
            if was_playing:
                self.play()

        self._resume_on_canplay(source.url, resume)
        return True

    # --- Playback ---

    def play(self) -> None:
        self.resource.play()

    def pause(self) -> None:
        self.resource.pause()

    def toggle_play(self) -> None:
        if self.resource.paused:
            self.play()
        else:
            self.pause()

    def seek(self, time: float) -> None:
        """Seeks within `[0, duration]`. NaN is ignored."""
        if time is None or math.isnan(time):
            return
        duration = self.resource.duration or self.store.get().duration
        target = max(0.0, min(time, duration)) if duration > 0 else max(0.0, time)
        self.resource.seek(target)
        self.events.publish("seek", target)

    def skip(self, seconds: float) -> None:
        self.seek(self.resource.current_time + seconds)

    def set_volume(self, volume: float) -> None:
        """Sets the volume in `[0, 1]`. Zero mutes, anything else unmutes."""
        safe = max(0.0, min(volume, 1.0))
        muted = self.resource.muted
        if safe == 0:
            muted = True
        elif muted:
            muted = False
        self.resource.set_volume(safe, muted)

    def toggle_mute(self) -> None:
        self.resource.set_volume(self.resource.volume, not self.resource.muted)

    def set_playback_rate(self, rate: float) -> None:
        if rate <= 0:
            raise PlaybackError(f"Playback rate must be positive, got {rate}.")
        self.resource.set_playback_rate(rate)

    def set_quality(self, index: int) -> None:
        self.store.set({"current_quality": index})
        self.events.publish("quality-request", index)

    def set_audio_track(self, index: int) -> None:
        self.store.set({"current_audio_track": index})
        self.events.publish("audio-track-request", index)

    # --- Subtitles & thumbnails ---

    async def set_subtitle(self, index: int) -> bool:
        return await self.subtitles.select(index)

    def add_subtitle_track(self, config: TextTrackConfig) -> int:
        self._track_configs.append(config)
        return self.subtitles.add_track(config)

    def set_subtitle_offset(self, offset: float) -> None:
        self.subtitles.set_offset(offset)

    def update_subtitle_settings(self, settings: Dict[str, Any]) -> None:
        self.subtitles.update_customization(settings)

    async def load_thumbnails(self, url: str) -> int:
        """
        Fetches a sprite thumbnail track into `state.thumbnails`.

        Returns:
            The number of thumbnail cues loaded.
        """
        result = await self.fetcher.fetch_with_retry(
            url,
            attempts=self.subtitles.FETCH_ATTEMPTS,
            timeout=self.subtitles.FETCH_TIMEOUT,
            fixed_delay=self.subtitles.FETCH_RETRY_DELAY,
        )
        if not result.ok:
            log.warning(f"[yellow]Thumbnails failed: {result.describe()}[/yellow]")
            self.store.set({"thumbnails": ()})
            self.notifications.notify(
                "Failed to load thumbnails.", type="warning", duration=4
            )
            return 0
        cues = parse_thumbnail_vtt(result.text, url)
        self.store.set({"thumbnails": tuple(cues)})
        log.debug(f"Loaded {len(cues)} thumbnail cues from {url}")
        return len(cues)

    # --- Notifications & errors ---

    def notify(
        self,
        message: str,
        type: NotificationType = "info",
        id: Optional[str] = None,
        duration: Optional[float] = None,
        progress: Optional[float] = None,
        action: Optional[NotificationAction] = None,
    ) -> str:
        return self.notifications.notify(
            message,
            type=type,
            id=id,
            duration=duration,
            progress=progress,
            action=action,
        )

    def remove_notification(self, notification_id: str) -> None:
        self.notifications.remove(notification_id)

    def trigger_error(self, message: str, fatal: bool = False) -> None:
        """
        Reports a failure from a plugin.

        Fatal errors go through the retry state machine. Anything else is shown
        once as a warning and leaves the state alone.
        """
        if fatal:
            self.retry.handle_fatal_error(message)
        else:
            log.warning(f"[yellow]{message}[/yellow]")
            self.notifications.notify(message, type="warning", duration=3)

    # --- Downloads ---

    def _download_url(self) -> str:
        state = self.store.get()
        if 0 <= state.current_source_index < len(state.sources):
            source = state.sources[state.current_source_index]
            return source.original_url or source.url
        return self.resource.src

    async def download(
        self, url: Optional[str] = None, filename: Optional[str] = None
    ) -> Optional[Path]:
        """
        Downloads `url`, or the current source when omitted.

        HLS sources are routed to the segmented downloader.
        """
        target = url or self._download_url()
        if target and classify_source_type(target) == "hls":
            return await self.download_hls(target, filename=filename)
        return await self.downloader.download(target, filename)

    async def download_hls(
        self,
        url: Optional[str] = None,
        output_format: str = "mp4",
        filename: Optional[str] = None,
    ) -> Optional[Path]:
        return await self.downloader.download_hls(
            url or self._download_url(), output_format, filename
        )

    def cancel_download(self, download_id: str) -> bool:
        return self.downloader.cancel(download_id)

    @property
    def active_downloads(self) -> List[str]:
        return list(self.downloader.active_downloads)

    def start_download(self, url: Optional[str] = None) -> asyncio.Task:
        """Runs `download` in the background and returns its task."""
        task = asyncio.get_running_loop().create_task(self.download(url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- Presentation reports from the host ---

    def set_fullscreen(self, is_fullscreen: bool) -> None:
        self.store.set({"is_fullscreen": is_fullscreen})
        self.events.publish("fullscreen", is_fullscreen)
        if not is_fullscreen:
            self.events.publish("fullscreen_exit")

    def set_pip(self, is_pip: bool) -> None:
        self.store.set({"is_pip": is_pip})
        self.events.publish("pip", is_pip)

    def set_controls_visible(self, visible: bool) -> None:
        self.store.set({"controls_visible": visible})
        self.events.publish("control", visible)

    def report_resize(self, width: int, height: int) -> None:
        self.events.publish("resize", {"width": width, "height": height})

    # --- Teardown ---

    def destroy(self) -> None:
        """Tears down every subscription, timer, task and plugin."""
        if self._destroyed:
            return
        self._destroyed = True
        self.events.publish("destroy")

        self.retry.cancel()
        self._clear_resume()
        self.downloader.cancel_all()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        for plugin in self.plugins.values():
            destroy = getattr(plugin, "destroy", None)
            if destroy is not None:
                destroy()
        self.plugins.clear()

        self.subtitles.teardown()
        self.notifications.teardown()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        self.resource.destroy()
        self.events.teardown()
        self.store.teardown()
        log.debug("Session destroyed.")
