"""
Subtitles Layer.

This package handles subtitle delivery: SubRip/WebVTT normalization, cue
parsing, the per-track lifecycle and sprite thumbnail tracks.
"""

from .formats import normalize_subtitle, parse_vtt, srt_to_vtt
from .manager import SubtitleManager
from .thumbnails import parse_thumbnail_vtt

__all__ = [
    "SubtitleManager",
    "normalize_subtitle",
    "parse_thumbnail_vtt",
    "parse_vtt",
    "srt_to_vtt",
]
