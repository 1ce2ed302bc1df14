import asyncio
import math

import pytest

from strata.core.plugin import Plugin
from strata.exceptions import PlaybackError, UnsupportedSourceError
from strata.models.state import PlayerSource, TextTrackConfig
from strata.storage.settings_repository import SettingsRepository


class RecordingPlugin:
    name = "hls"

    def __init__(self):
        self.session = None
        self.loads = []
        self.quality_requests = []
        self.destroyed = False

    def init(self, session):
        self.session = session
        session.events.subscribe("load", self.loads.append)
        session.events.subscribe("quality-request", self.quality_requests.append)

    def destroy(self):
        self.destroyed = True


def _record(session, *channels):
    seen = []
    for channel in channels:
        session.events.subscribe(
            channel, lambda payload, c=channel: seen.append((c, payload))
        )
    return seen


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://x.example.com/a/master.m3u8?token=1", "hls"),
        ("https://x.example.com/manifest.mpd", "dash"),
        ("https://x.example.com/live.flv", "mpegts"),
        ("https://x.example.com/seg.ts", "mpegts"),
        ("magnet:?xt=urn:btih:abc", "webtorrent"),
        ("https://x.example.com/file.torrent", "webtorrent"),
        ("https://x.example.com/movie.mp4", "mp4"),
        ("https://x.example.com/stream", "mp4"),
    ],
)
def test_load_classifies_source_type(make_session, url, expected):
    session = make_session()
    seen = _record(session, "load")
    session.load(url)
    assert seen == [("load", {"url": url, "type": expected})]


def test_only_directly_playable_types_set_resource_source(make_session):
    session = make_session()
    session.load("https://x.example.com/movie.mp4")
    assert session.resource.src == "https://x.example.com/movie.mp4"

    session.load("https://x.example.com/master.m3u8")
    assert session.resource.src == ""


def test_explicit_source_type_overrides_heuristics(make_session):
    session = make_session()
    seen = _record(session, "load")
    session.load(PlayerSource(url="https://x.example.com/video", type="webm"))
    assert seen[0][1]["type"] == "webm"
    assert session.resource.src == "https://x.example.com/video"


def test_load_resets_selection_state(make_session):
    session = make_session()
    session.store.set({"current_quality": 2, "current_audio_track": 1, "error": "x"})
    session.load("https://x.example.com/movie.mp4")

    state = session.store.get()
    assert state.current_quality == -1
    assert state.current_audio_track == -1
    assert state.error is None
    assert state.is_buffering is True
    assert state.current_source_index == 0
    assert state.source_statuses == {}


def test_empty_source_is_rejected(make_session):
    with pytest.raises(UnsupportedSourceError):
        make_session().load("")


def test_plugins_receive_load_and_quality_requests(make_session):
    session = make_session()
    plugin = RecordingPlugin()
    assert isinstance(plugin, Plugin)
    session.use(plugin)
    session.use(RecordingPlugin())  # same name, ignored

    session.load("https://x.example.com/master.m3u8")
    session.set_quality(2)

    assert plugin.loads == [{"url": "https://x.example.com/master.m3u8", "type": "hls"}]
    assert plugin.quality_requests == [2]
    assert session.store.get().current_quality == 2

    session.destroy()
    assert plugin.destroyed is True


def test_resource_events_flow_into_state(make_session):
    session = make_session()
    seen = _record(session, "play", "pause", "loading", "ready")
    session.load("https://x.example.com/movie.mp4")
    resource = session.resource

    resource.report_duration(120.0)
    resource.dispatch("canplay")
    resource.dispatch("canplay")
    session.play()
    resource.dispatch("waiting")
    resource.dispatch("playing")
    resource.dispatch("loadeddata")
    session.pause()

    state = session.store.get()
    assert state.duration == 120.0
    assert state.is_playing is False
    assert state.is_buffering is False
    assert state.source_statuses == {0: "success"}
    assert seen == [
        ("ready", None),
        ("play", None),
        ("loading", True),
        ("loading", False),
        ("pause", None),
    ]


def test_seek_is_clamped_and_ignores_nan(make_session):
    session = make_session()
    seen = _record(session, "seek")
    session.load("https://x.example.com/movie.mp4")
    session.resource.report_duration(60.0)

    session.seek(90)
    assert session.store.get().current_time == 60.0
    session.seek(-5)
    assert session.store.get().current_time == 0.0
    session.seek(math.nan)
    assert seen == [("seek", 60.0), ("seek", 0.0)]

    session.seek(10)
    session.skip(15)
    assert session.store.get().current_time == 25.0


def test_volume_clamps_and_mutes(make_session):
    session = make_session()
    session.set_volume(0)
    assert session.store.get().is_muted is True
    session.set_volume(3)
    state = session.store.get()
    assert (state.volume, state.is_muted) == (1.0, False)
    session.toggle_mute()
    assert session.store.get().is_muted is True


def test_playback_rate(make_session):
    session = make_session()
    session.set_playback_rate(1.5)
    assert session.store.get().playback_rate == 1.5
    with pytest.raises(PlaybackError):
        session.set_playback_rate(0)


def test_switch_source_keeps_position(make_session):
    session = make_session()
    session.set_sources(
        [
            "https://x.example.com/1080.mp4",
            PlayerSource(url="https://x.example.com/720.mp4", name="720p"),
        ]
    )
    session.resource.report_duration(100.0)
    session.resource.report_time(30.0)

    assert session.switch_source(1) is True
    assert session.resource.src == "https://x.example.com/720.mp4"
    session.resource.report_duration(100.0)
    session.resource.dispatch("canplay")

    state = session.store.get()
    assert state.current_source_index == 1
    assert len(state.sources) == 2
    assert state.current_time == 30.0
    assert session.switch_source(5) is False


def test_non_fatal_error_only_warns(make_session, scheduler):
    session = make_session()
    session.trigger_error("Audio track unavailable")
    state = session.store.get()
    assert state.error is None
    assert [n.type for n in state.notifications] == ["warning"]
    scheduler.advance(10)
    assert session.store.get().notifications == ()


def test_fatal_plugin_error_enters_retry(make_session, scheduler):
    session = make_session()
    session.load("https://x.example.com/master.m3u8")
    session.trigger_error("manifest failed", fatal=True)
    assert session.retry.retry_count == 1
    assert scheduler.pending[0].delay == 1.5


def test_presentation_reports(make_session):
    session = make_session()
    seen = _record(session, "fullscreen", "fullscreen_exit", "pip", "control", "resize")
    session.set_fullscreen(True)
    session.set_fullscreen(False)
    session.set_pip(True)
    session.set_controls_visible(False)
    session.report_resize(1280, 720)

    state = session.store.get()
    assert state.is_pip is True
    assert state.controls_visible is False
    assert seen == [
        ("fullscreen", True),
        ("fullscreen", False),
        ("fullscreen_exit", None),
        ("pip", True),
        ("control", False),
        ("resize", {"width": 1280, "height": 720}),
    ]


def test_download_prefers_original_url_and_routes_hls(make_session, fetcher, tmp_path):
    original = "https://x.example.com/hls/index.m3u8"
    fetcher.responses[original] = "#EXTM3U\n#EXTINF:4,\nseg0.ts\n#EXT-X-ENDLIST\n"
    fetcher.responses["https://x.example.com/hls/seg0.ts"] = bytes([0x47, 0, 0, 0])

    async def scenario():
        session = make_session()
        session.load(
            PlayerSource(
                url="blob:https://x.example.com/1", type="mp4", original_url=original
            )
        )
        return await session.download()

    path = asyncio.run(scenario())
    assert path == tmp_path / "index.ts"


def test_load_thumbnails(make_session, fetcher):
    url = "https://x.example.com/thumbs.vtt"
    fetcher.responses[url] = "WEBVTT\n\n00:00.000 --> 00:05.000\nsprite.jpg#xywh=0,0,10,10\n"

    session = make_session()
    assert asyncio.run(session.load_thumbnails(url)) == 1
    assert session.store.get().thumbnails[0].url == "https://x.example.com/sprite.jpg"


def test_failed_thumbnails_warn_and_clear(make_session):
    session = make_session()
    session.subtitles.FETCH_RETRY_DELAY = 0.0
    session.store.set({"thumbnails": ()})
    assert asyncio.run(session.load_thumbnails("https://x.example.com/none.vtt")) == 0
    state = session.store.get()
    assert state.thumbnails == ()
    assert [n.type for n in state.notifications] == ["warning"]


def test_settings_are_restored_and_persisted(make_session, tmp_path):
    repository = SettingsRepository(tmp_path)
    session = make_session(settings=repository)
    session.set_volume(0.4)
    session.update_subtitle_settings({"text_size": 120})
    session.destroy()

    restored = make_session(settings=SettingsRepository(tmp_path))
    state = restored.store.get()
    assert state.volume == 0.4
    assert state.subtitle_settings.text_size == 120
    assert restored.resource.volume == 0.4


def test_destroy_tears_everything_down(make_session, scheduler):
    session = make_session()
    seen = _record(session, "destroy")
    session.load("https://x.example.com/movie.mp4", tracks=[])
    session.resource.report_error(2, "network")
    session.notify("persistent")

    session.destroy()
    session.destroy()

    assert seen == [("destroy", None)]
    assert all(t.cancelled for t in scheduler.timers)
    assert not session.events.has_subscribers("destroy")
    # Resource events no longer reach the store.
    session.resource.dispatch("play")
    assert session.store.get().is_playing is False


def test_add_subtitle_track_appends(make_session):
    session = make_session()
    index = session.add_subtitle_track(
        TextTrackConfig(src="https://x.example.com/fr.vtt", label="French")
    )
    assert index == 0
    assert session.store.get().subtitle_tracks[0].label == "French"
