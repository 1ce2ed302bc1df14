"""
Helper functions for formatting data into human-readable strings.
"""

import math
from typing import Optional


def format_size(bytes_size: float) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_eta(eta_ms: Optional[float]) -> str:
    """Formats a remaining-time estimate in milliseconds ('--' when unknown)."""
    if eta_ms is None or math.isinf(eta_ms) or math.isnan(eta_ms):
        return "--"
    return format_duration(math.ceil(eta_ms / 1000))


def format_speed(bytes_per_ms: float) -> str:
    """Formats a byte rate measured per millisecond as a per-second speed."""
    return f"{format_size(bytes_per_ms * 1000)}/s"


def format_time(seconds: float) -> str:
    """Formats a playback position as `M:SS` or `H:MM:SS`."""
    if seconds is None or math.isnan(seconds):
        return "00:00"
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"
