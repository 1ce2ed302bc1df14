"""
Utilities for handling file paths, output filenames and source URLs.
"""

import time
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urljoin, urlsplit

from pathvalidate import sanitize_filename


def classify_source_type(url: str) -> str:
    """
    Guesses a source type from URL heuristics.

    `.m3u8` is HLS, `.mpd` is DASH, `.flv`/`.ts` is MPEG-TS, magnet links and
    `.torrent` files are WebTorrent; everything else is treated as MP4.
    """
    lowered = url.lower()
    if lowered.startswith("magnet:"):
        return "webtorrent"
    path = urlsplit(lowered).path
    if ".m3u8" in path:
        return "hls"
    if path.endswith(".mpd"):
        return "dash"
    if path.endswith((".flv", ".ts")):
        return "mpegts"
    if path.endswith(".torrent"):
        return "webtorrent"
    return "mp4"


def is_object_url(url: str) -> bool:
    """True for in-memory stream handles that cannot be fetched again."""
    return url.startswith(("blob:", "mediastream:"))


def base_url(url: str) -> str:
    """Returns the URL up to and including the last `/` of its path."""
    return url[: url.rfind("/") + 1] if "/" in url else ""


def resolve_url(base: str, reference: str) -> str:
    """Resolves a possibly relative playlist or image reference against `base`."""
    if urlsplit(reference).scheme:
        return reference
    return urljoin(base, reference)


def filename_from_url(url: str, ext: Optional[str] = None) -> str:
    """
    Derives a safe output filename from the last path component of a URL.

    Args:
        ext: Replace (or add) the file extension.
    """
    name = unquote(urlsplit(url).path.rsplit("/", 1)[-1])
    name = sanitize_filename(name)
    if not name:
        name = f"video-{int(time.time() * 1000)}.{ext or 'mp4'}"
    if ext:
        name = f"{Path(name).stem}.{ext}"
    return name


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
