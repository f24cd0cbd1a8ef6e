"""Parsers for the progress streams of external tools."""

import re

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)%")
_OUT_TIME_RE = re.compile(r"^out_time=(\d+):(\d+):(\d+(?:\.\d+)?)$")


def parse_download_percent(line: str) -> float | None:
    """Percentage from a yt-dlp ``--newline --progress`` line, e.g.
    ``[download]  42.3% of 10.00MiB at 1.00MiB/s ETA 00:06``."""
    match = _PERCENT_RE.search(line)
    if not match:
        return None
    return float(match.group(1))


def parse_ffmpeg_out_time(line: str) -> float | None:
    """Elapsed output media time in seconds from an ffmpeg ``-progress`` line.

    Handles ``out_time_us=``, ``out_time_ms=`` (also microseconds in ffmpeg)
    and ``out_time=HH:MM:SS.micro``. Returns None for other keys and for the
    ``N/A`` placeholder ffmpeg emits before the first frame.
    """
    line = line.strip()
    for key in ("out_time_us=", "out_time_ms="):
        if line.startswith(key):
            try:
                return int(line[len(key):]) / 1_000_000
            except ValueError:
                return None
    match = _OUT_TIME_RE.match(line)
    if match:
        hours, minutes, seconds = match.groups()
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    return None


def media_time_to_percent(elapsed_s: float, duration_s: float) -> int | None:
    """Map elapsed media time onto 0-99. None when duration is unknown."""
    if duration_s <= 0:
        return None
    return max(0, min(99, round(elapsed_s / duration_s * 100)))
