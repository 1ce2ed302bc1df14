"""
Subtitle format normalization (SubRip to WebVTT) and WebVTT cue parsing.
"""

import re
from typing import List, Optional

from strata.media.resource import Cue

VTT_HEADER = "WEBVTT"

# HH:MM:SS,mmm or MM:SS,mmm (hours optional), with either separator.
_TIMESTAMP = re.compile(r"(?:(\d{1,2}):)?(\d{1,2}):(\d{2})[,.](\d{1,3})")
_TIMING_LINE = re.compile(r"^\s*(\S+)\s+-->\s+(\S+)(.*)$")


def _normalize_timestamp(match: re.Match) -> str:
    hours, minutes, seconds, millis = match.groups()
    return f"{int(hours or 0):02d}:{int(minutes):02d}:{seconds}.{millis.ljust(3, '0')}"


def srt_to_vtt(text: str) -> str:
    """
    Converts SubRip timing syntax to WebVTT and prepends the header if missing.

    Only timing lines (those containing `-->`) are rewritten, so cue text that
    happens to contain comma-separated numbers is left alone. Text that already
    is WebVTT passes through with at most its timestamps normalized.
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")

    lines = []
    for line in text.split("\n"):
        if "-->" in line:
            line = _TIMESTAMP.sub(_normalize_timestamp, line)
        lines.append(line)
    converted = "\n".join(lines)

    if not converted.lstrip().startswith(VTT_HEADER):
        converted = f"{VTT_HEADER}\n\n{converted.lstrip()}"
    return converted


def normalize_subtitle(text: str) -> str:
    """Returns renderable WebVTT for SRT or WebVTT input."""
    return srt_to_vtt(text)


def parse_timestamp(value: str) -> Optional[float]:
    """Parses `HH:MM:SS.mmm` or `MM:SS.mmm` into seconds."""
    match = _TIMESTAMP.fullmatch(value.strip())
    if not match:
        return None
    hours, minutes, seconds, millis = match.groups()
    return (
        int(hours or 0) * 3600
        + int(minutes) * 60
        + int(seconds)
        + int(millis.ljust(3, "0")) / 1000
    )


def parse_vtt(text: str) -> List[Cue]:
    """
    Parses WebVTT text into cues.

    Blocks without a valid timing line (the header, NOTE, STYLE and REGION
    blocks) are skipped. Cue settings after the end timestamp are ignored.
    """
    cues: List[Cue] = []
    blocks = re.split(r"\n\s*\n", text.replace("\r\n", "\n").strip())
    for block in blocks:
        lines = block.split("\n")
        timing_index = next((i for i, line in enumerate(lines) if "-->" in line), None)
        if timing_index is None:
            continue
        match = _TIMING_LINE.match(lines[timing_index])
        if not match:
            continue
        start = parse_timestamp(match.group(1))
        end = parse_timestamp(match.group(2))
        if start is None or end is None:
            continue
        cue_id = lines[timing_index - 1].strip() if timing_index > 0 else ""
        cue_text = "\n".join(lines[timing_index + 1 :]).strip()
        cues.append(Cue(start=start, end=end, text=cue_text, id=cue_id))
    return cues
