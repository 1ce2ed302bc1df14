import re

from strata.utils.formatting import (
    format_duration,
    format_eta,
    format_size,
    format_speed,
    format_time,
)
from strata.utils.path import (
    base_url,
    filename_from_url,
    is_object_url,
    resolve_url,
)


def test_filename_from_url_sanitizes_and_replaces_extension():
    assert filename_from_url("https://x.example.com/a/My%20Movie.mp4") == "My Movie.mp4"
    assert filename_from_url("https://x.example.com/a/clip:1.mp4?x=1") == "clip1.mp4"
    assert filename_from_url("https://x.example.com/live/index.m3u8", "ts") == "index.ts"


def test_filename_falls_back_to_timestamp():
    name = filename_from_url("https://x.example.com/", "mp4")
    assert re.fullmatch(r"video-\d+\.mp4", name)


def test_url_helpers():
    assert is_object_url("blob:https://x.example.com/1")
    assert not is_object_url("https://x.example.com/1.mp4")
    assert base_url("https://x.example.com/a/b.m3u8") == "https://x.example.com/a/"
    assert resolve_url("https://x.example.com/a/", "../b/c.ts") == "https://x.example.com/b/c.ts"
    assert resolve_url("https://x.example.com/a/", "https://y.example.com/z.ts") == (
        "https://y.example.com/z.ts"
    )


def test_formatting():
    assert format_size(0) == "0 B"
    assert format_size(1536) == "1.5 KB"
    assert format_duration(3725) == "1h 2m 5s"
    assert format_eta(9000) == "9s"
    assert format_eta(None) == "--"
    assert format_speed(100) == "97.7 KB/s"
    assert format_time(65) == "1:05"
    assert format_time(3725) == "1:02:05"
