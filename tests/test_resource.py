import math

import pytest

from strata.media.resource import MEDIA_ERR_NETWORK, Cue, MediaResource


def test_once_fires_a_single_time():
    resource = MediaResource()
    calls = []
    resource.once("canplay", calls.append)
    resource.dispatch("canplay", 1)
    resource.dispatch("canplay", 2)
    assert calls == [1]


def test_play_and_pause_only_dispatch_on_change():
    resource = MediaResource()
    events = []
    resource.on("play", lambda _: events.append("play"))
    resource.on("pause", lambda _: events.append("pause"))

    resource.play()
    resource.play()
    resource.pause()
    resource.pause()

    assert events == ["play", "pause"]


def test_reports_update_resource():
    resource = MediaResource()
    resource.report_duration(math.nan)
    assert resource.duration == 0.0

    errors = []
    resource.on("error", errors.append)
    resource.report_error(MEDIA_ERR_NETWORK, "offline")
    assert errors[0].code == MEDIA_ERR_NETWORK
    resource.set_source("https://x.example.com/a.mp4")
    assert resource.error is None


def test_text_track_cuechange_follows_time_and_mode():
    resource = MediaResource()
    track = resource.add_text_track("English", "en", cues=[Cue(1.0, 3.0, "Hello")])
    changes = []
    track.on("cuechange", lambda t: changes.append([c.text for c in t.active_cues]))

    resource.report_time(2.0)
    assert changes == []  # disabled tracks stay silent

    track.mode = "hidden"
    resource.report_time(2.5)
    resource.report_time(4.0)
    assert changes == [["Hello"], []]

    with pytest.raises(ValueError):
        track.mode = "visible"


def test_destroy_clears_tracks_and_listeners():
    resource = MediaResource()
    resource.add_text_track("English")
    resource.play()
    events = []
    resource.on("play", events.append)

    resource.destroy()
    resource.dispatch("play")

    assert resource.text_tracks == []
    assert resource.paused is True
    assert resource.src == ""
    assert events == []
