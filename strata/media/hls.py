"""
HLS playlist parsing: master/variant resolution, encryption detection and
segment extraction.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from strata.exceptions import DownloadError, UnsupportedContentError
from strata.media.cancellation import CancellationToken
from strata.utils.path import base_url, resolve_url

log = logging.getLogger(__name__)

_ATTRIBUTE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')


def parse_attributes(value: str) -> Dict[str, str]:
    """Parses an HLS attribute list (`KEY=value,KEY="quoted"`)."""
    return {key: raw.strip('"') for key, raw in _ATTRIBUTE.findall(value)}


@dataclass(frozen=True)
class Variant:
    bandwidth: int
    uri: str
    resolution: Optional[str] = None
    codecs: Optional[str] = None


@dataclass
class MediaPlaylist:
    """A resolved media playlist ready for segment download."""

    url: str
    segments: List[str] = field(default_factory=list)
    variant: Optional[Variant] = None
    target_duration: Optional[float] = None
    is_live: bool = True


def is_master_playlist(text: str) -> bool:
    return "#EXT-X-STREAM-INF" in text


def parse_variants(text: str, base: str) -> List[Variant]:
    """Lists the stream variants of a master playlist, in playlist order."""
    variants: List[Variant] = []
    pending: Optional[Dict[str, str]] = None
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith("#EXT-X-STREAM-INF:"):
            pending = parse_attributes(line.split(":", 1)[1])
        elif pending is not None and line and not line.startswith("#"):
            try:
                bandwidth = int(pending.get("BANDWIDTH", "0"))
            except ValueError:
                bandwidth = 0
            variants.append(
                Variant(
                    bandwidth=bandwidth,
                    uri=resolve_url(base, line),
                    resolution=pending.get("RESOLUTION"),
                    codecs=pending.get("CODECS"),
                )
            )
            pending = None
    return variants


def select_best_variant(variants: List[Variant]) -> Optional[Variant]:
    """Picks the strictly highest bandwidth; the earliest variant wins ties."""
    best: Optional[Variant] = None
    for variant in variants:
        if best is None or variant.bandwidth > best.bandwidth:
            best = variant
    return best


def is_encrypted(text: str) -> bool:
    """True if any `#EXT-X-KEY` declares a method other than NONE."""
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("#EXT-X-KEY:"):
            method = parse_attributes(line.split(":", 1)[1]).get("METHOD", "NONE")
            if method.upper() != "NONE":
                return True
    return False


def parse_segments(text: str, base: str) -> List[str]:
    """
    Returns the ordered, absolute segment URLs of a media playlist.

    An `#EXT-X-MAP` initialization section is emitted once, ahead of the media
    segments that follow it.
    """
    segments: List[str] = []
    seen_maps = set()
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#EXT-X-MAP:"):
            uri = parse_attributes(line.split(":", 1)[1]).get("URI")
            if uri and uri not in seen_maps:
                seen_maps.add(uri)
                segments.append(resolve_url(base, uri))
        elif not line.startswith("#"):
            segments.append(resolve_url(base, line))
    return segments


def parse_media_playlist(text: str, url: str) -> MediaPlaylist:
    target = re.search(r"#EXT-X-TARGETDURATION:(\d+(?:\.\d+)?)", text)
    return MediaPlaylist(
        url=url,
        segments=parse_segments(text, base_url(url)),
        target_duration=float(target.group(1)) if target else None,
        is_live="#EXT-X-ENDLIST" not in text,
    )


async def resolve_media_playlist(
    fetcher, url: str, token: Optional[CancellationToken] = None
) -> MediaPlaylist:
    """
    Fetches a playlist and, for a master playlist, its highest-bandwidth variant.

    Raises:
        UnsupportedContentError: If segments are encrypted.
        DownloadError: If the playlist has no variants or no segments.
        FetchError: If a playlist could not be fetched.
        DownloadCancelledError: If `token` is cancelled.
    """
    result = await fetcher.fetch_with_retry(url, token)
    result.unwrap()
    text = result.text
    playlist_url = url
    variant = None

    if is_master_playlist(text):
        variants = parse_variants(text, base_url(url))
        variant = select_best_variant(variants)
        if variant is None:
            raise DownloadError("Master playlist does not list any variants.")
        log.debug(
            f"Selected variant {variant.uri} ({variant.bandwidth} bps) "
            f"out of {len(variants)}."
        )
        playlist_url = variant.uri
        result = await fetcher.fetch_with_retry(playlist_url, token)
        result.unwrap()
        text = result.text

    if is_encrypted(text):
        raise UnsupportedContentError(
            "This stream uses encrypted segments, which cannot be downloaded."
        )

    playlist = parse_media_playlist(text, playlist_url)
    playlist.variant = variant
    if not playlist.segments:
        raise DownloadError("No segments found in playlist.")
    return playlist
