"""Media file information utilities using FFprobe."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from videoframer.config import get_settings
from videoframer.exceptions import ProbeError


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class VideoProbe:
    """Facts about a source video needed to plan a transform."""

    width: int
    height: int
    duration_s: float
    has_audio: bool = False
    video_codec: str | None = None


async def _run_ffprobe(file_path: str, *args: str, ffprobe_path: str | None = None) -> dict[str, Any]:
    """Run ffprobe without blocking the event loop and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        ffprobe_path or settings.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProbeError(f"ffprobe could not be started: {e}") from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise ProbeError(f"ffprobe failed: {stderr.decode('utf-8', errors='replace').strip()}")

    try:
        return json.loads(stdout.decode("utf-8", errors="replace") or "{}")
    except json.JSONDecodeError as e:
        raise ProbeError(f"Failed to parse ffprobe output: {e}") from e


def parse_probe(data: dict[str, Any], file_path: str = "") -> VideoProbe:
    """Extract dimensions, duration and audio presence from ffprobe JSON.

    Raises:
        ProbeError: If there is no video stream with usable dimensions
    """
    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video is None:
        raise ProbeError(f"No video stream found in: {file_path}" if file_path else "No video stream found")

    width = video.get("width")
    height = video.get("height")
    if not width or not height:
        raise ProbeError(f"Video dimensions not found in: {file_path}")

    duration = 0.0
    for source in (data.get("format", {}), video):
        try:
            duration = float(source.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0.0
        if duration > 0:
            break

    return VideoProbe(
        width=int(width),
        height=int(height),
        duration_s=duration,
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
        video_codec=video.get("codec_name"),
    )


async def probe_video(file_path: str, ffprobe_path: str | None = None) -> VideoProbe:
    """
    Probe a video file for pixel dimensions and duration.

    Args:
        file_path: Path to media file
        ffprobe_path: Override for the configured ffprobe binary

    Returns:
        VideoProbe for the first video stream

    Raises:
        ProbeError: If ffprobe fails or no video stream is decodable
    """
    data = await _run_ffprobe(file_path, "-show_format", "-show_streams", ffprobe_path=ffprobe_path)
    return parse_probe(data, file_path)
