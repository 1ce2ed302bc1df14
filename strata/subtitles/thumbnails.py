"""
Parses sprite-sheet thumbnail tracks (WebVTT whose cue payload is an image URL
with an `#xywh=` fragment).
"""

import re
from typing import List

from strata.models.state import ThumbnailCue
from strata.utils.path import resolve_url

from .formats import parse_timestamp

_ABSOLUTE = re.compile(r"^(https?:)?//|^data:", re.IGNORECASE)


def parse_thumbnail_vtt(text: str, vtt_url: str) -> List[ThumbnailCue]:
    """
    Extracts thumbnail cues from a sprite WebVTT.

    Relative image URLs are resolved against the directory of `vtt_url`. Cues
    without a positive width and height are dropped.
    """
    cues: List[ThumbnailCue] = []
    start = end = None

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if "-->" in line:
            left, right = line.split("-->", 1)
            start = parse_timestamp(left)
            end = parse_timestamp(right.split()[0] if right.split() else "")
            continue
        if start is None or end is None or not line:
            continue

        url_part, _, fragment = line.partition("#")
        if not _ABSOLUTE.match(url_part):
            url_part = resolve_url(vtt_url, url_part)

        x = y = w = h = 0
        if fragment.startswith("xywh="):
            coords = fragment[len("xywh=") :].split(",")
            if len(coords) == 4 and all(c.strip().isdigit() for c in coords):
                x, y, w, h = (int(c) for c in coords)

        if w > 0 and h > 0:
            cues.append(ThumbnailCue(start, end, url_part, x, y, w, h))
        start = end = None

    return cues
