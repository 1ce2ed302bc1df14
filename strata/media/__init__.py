"""
Media Layer.

This package contains the media resource abstraction the session drives, and
everything involved in retrieving media: the HTTP fetcher, HLS playlist
handling, progress estimation and the download engine.
"""

from .cancellation import CancellationToken
from .downloader import Downloader
from .fetch import Fetcher, FetchResult, FetchStatus
from .resource import Cue, MediaResource, TextTrack

__all__ = [
    "CancellationToken",
    "Cue",
    "Downloader",
    "FetchResult",
    "FetchStatus",
    "Fetcher",
    "MediaResource",
    "TextTrack",
]
