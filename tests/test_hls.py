import asyncio

import pytest

from strata.exceptions import DownloadError, UnsupportedContentError
from strata.media.hls import (
    is_encrypted,
    is_master_playlist,
    parse_attributes,
    parse_segments,
    parse_variants,
    resolve_media_playlist,
    select_best_variant,
)

BASE = "https://cdn.example.com/show/"

MASTER = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=500000,RESOLUTION=640x360,CODECS="avc1.4d401e,mp4a.40.2"
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=1200000,RESOLUTION=1920x1080
high/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=1280x720
mid/index.m3u8
"""

MEDIA = """#EXTM3U
#EXT-X-TARGETDURATION:6
#EXT-X-MAP:URI="init.mp4"
#EXTINF:6.0,
seg0.m4s
#EXT-X-MAP:URI="init.mp4"
#EXTINF:6.0,
seg1.m4s
#EXTINF:6.0,
https://other.example.com/seg2.m4s
#EXT-X-ENDLIST
"""


def test_attributes_keep_quoted_commas():
    attrs = parse_attributes('BANDWIDTH=1,CODECS="a,b",RESOLUTION=1x1')
    assert attrs == {"BANDWIDTH": "1", "CODECS": "a,b", "RESOLUTION": "1x1"}


def test_highest_bandwidth_variant_wins():
    variants = parse_variants(MASTER, BASE)
    assert [v.bandwidth for v in variants] == [500000, 1200000, 800000]
    best = select_best_variant(variants)
    assert best.bandwidth == 1200000
    assert best.uri == BASE + "high/index.m3u8"
    assert variants[0].codecs == "avc1.4d401e,mp4a.40.2"


def test_ties_keep_the_first_variant():
    text = (
        "#EXT-X-STREAM-INF:BANDWIDTH=100\na.m3u8\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=100\nb.m3u8\n"
    )
    assert select_best_variant(parse_variants(text, BASE)).uri.endswith("a.m3u8")


def test_master_detection():
    assert is_master_playlist(MASTER)
    assert not is_master_playlist(MEDIA)


def test_segments_are_absolute_with_single_init_section():
    assert parse_segments(MEDIA, BASE) == [
        BASE + "init.mp4",
        BASE + "seg0.m4s",
        BASE + "seg1.m4s",
        "https://other.example.com/seg2.m4s",
    ]


def test_encryption_detection():
    assert is_encrypted('#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\nseg.ts')
    assert not is_encrypted("#EXT-X-KEY:METHOD=NONE\nseg.ts")
    assert not is_encrypted(MEDIA)


def test_resolve_follows_best_variant(fetcher):
    fetcher.responses[BASE + "master.m3u8"] = MASTER
    fetcher.responses[BASE + "high/index.m3u8"] = MEDIA

    playlist = asyncio.run(resolve_media_playlist(fetcher, BASE + "master.m3u8"))

    assert playlist.url == BASE + "high/index.m3u8"
    assert playlist.variant.bandwidth == 1200000
    assert playlist.segments[0] == BASE + "high/init.mp4"
    assert playlist.target_duration == 6.0
    assert playlist.is_live is False
    assert BASE + "low/index.m3u8" not in fetcher.requests


def test_resolve_rejects_encrypted_streams(fetcher):
    fetcher.responses[BASE + "enc.m3u8"] = (
        '#EXTM3U\n#EXT-X-KEY:METHOD=SAMPLE-AES,URI="skd://k"\nseg0.ts\n'
    )
    with pytest.raises(UnsupportedContentError):
        asyncio.run(resolve_media_playlist(fetcher, BASE + "enc.m3u8"))


def test_resolve_rejects_empty_playlists(fetcher):
    fetcher.responses[BASE + "empty.m3u8"] = "#EXTM3U\n#EXT-X-ENDLIST\n"
    with pytest.raises(DownloadError, match="No segments"):
        asyncio.run(resolve_media_playlist(fetcher, BASE + "empty.m3u8"))
