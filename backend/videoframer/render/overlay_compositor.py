"""Overlay compositing with Pillow + FFmpeg.

Two steps, kept separate:
1. Pre-scale the overlay image to the target size once with Pillow.
2. Overlay the pre-scaled image onto every frame of the (downscaled) source
   with FFmpeg, re-encoding audio to a small mono AAC track.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps

from videoframer.config import Settings, get_settings
from videoframer.exceptions import EmptyOutputError, ExternalToolError
from videoframer.utils.progress import media_time_to_percent, parse_ffmpeg_out_time

logger = logging.getLogger(__name__)


def _round_even(value: float) -> int:
    """Round half-up to the nearest even integer (libx264 + yuv420p need even sizes)."""
    return max(2, int(math.floor(value / 2 + 0.5)) * 2)


def compute_target_dimensions(width: int, height: int, max_dimension: int = 720) -> tuple[int, int]:
    """Uniformly downscale so neither side exceeds ``max_dimension``.

    Sources already within the cap keep their size, trimmed down to even
    values when a side is odd. An odd cap is itself trimmed to the even
    value below it.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid source dimensions: {width}x{height}")

    if width > max_dimension or height > max_dimension:
        scale = max_dimension / max(width, height)
        cap = max(2, max_dimension - max_dimension % 2)
        return min(_round_even(width * scale), cap), min(_round_even(height * scale), cap)

    return max(2, width - width % 2), max(2, height - height % 2)


def prescale_overlay(overlay_path: str | Path, width: int, height: int, output_path: str | Path) -> Path:
    """Resize the overlay to exactly ``width`` x ``height`` as an RGBA PNG.

    Uses cover semantics: the image is scaled to fill the target and the
    excess is cropped from the centre.
    """
    output_path = Path(output_path)
    with Image.open(overlay_path) as img:
        rgba = img.convert("RGBA")
        fitted = ImageOps.fit(rgba, (width, height), method=Image.Resampling.LANCZOS)
        fitted.save(output_path, format="PNG")
    return output_path


@dataclass
class CompositeConfig:
    """Encoder settings for the composited output."""

    preset: str = "veryfast"
    crf: int = 30
    maxrate: str = "2M"
    bufsize: str = "4M"
    audio_bitrate: str = "64k"
    audio_sample_rate: int = 44100
    audio_channels: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompositeConfig":
        return cls(
            preset=settings.transform_preset,
            crf=settings.transform_crf,
            maxrate=settings.transform_maxrate,
            bufsize=settings.transform_bufsize,
            audio_bitrate=settings.transform_audio_bitrate,
            audio_sample_rate=settings.transform_audio_sample_rate,
            audio_channels=settings.transform_audio_channels,
        )


def build_composite_command(
    ffmpeg_path: str,
    source_path: str,
    overlay_path: str,
    output_path: str,
    width: int,
    height: int,
    config: CompositeConfig,
) -> list[str]:
    """Build the FFmpeg command that burns the overlay into the source."""
    filter_complex = ";".join([
        f"[0:v]scale={width}:{height}:flags=fast_bilinear[scaled]",
        "[1:v]format=rgba[frame]",
        "[scaled][frame]overlay=0:0[out]",
    ])
    return [
        ffmpeg_path, "-y",
        "-i", source_path,
        "-i", overlay_path,
        "-filter_complex", filter_complex,
        "-map", "[out]",
        "-map", "0:a?",
        "-c:v", "libx264",
        "-preset", config.preset,
        "-crf", str(config.crf),
        "-profile:v", "baseline",
        "-level", "3.0",
        "-pix_fmt", "yuv420p",
        "-maxrate", config.maxrate,
        "-bufsize", config.bufsize,
        "-c:a", "aac",
        "-b:a", config.audio_bitrate,
        "-ar", str(config.audio_sample_rate),
        "-ac", str(config.audio_channels),
        "-movflags", "+faststart",
        "-threads", "0",
        "-nostats",
        "-progress", "pipe:1",
        output_path,
    ]


class OverlayCompositor:
    """Runs the FFmpeg compositing step and reports fractional progress."""

    def __init__(self, settings: Settings | None = None, config: CompositeConfig | None = None):
        self.settings = settings or get_settings()
        self.config = config or CompositeConfig.from_settings(self.settings)

    async def composite(
        self,
        source_path: str,
        overlay_path: str,
        output_path: str,
        width: int,
        height: int,
        duration_s: float,
        on_progress: Callable[[int], None] | None = None,
    ) -> Path:
        """Composite and return the output path.

        Raises:
            ExternalToolError: FFmpeg could not start or exited non-zero
            EmptyOutputError: FFmpeg exited 0 but wrote nothing
        """
        cmd = build_composite_command(
            self.settings.ffmpeg_path,
            source_path,
            overlay_path,
            output_path,
            width,
            height,
            self.config,
        )
        logger.info(f"[COMPOSITE] {width}x{height} {source_path} -> {output_path}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError("ffmpeg", None, f"ffmpeg could not be started: {e}") from e

        # Drain stderr concurrently so a chatty encoder never blocks on a full pipe.
        stderr_task = asyncio.create_task(proc.stderr.read())

        async for raw_line in proc.stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if line.startswith("progress=end"):
                break
            elapsed = parse_ffmpeg_out_time(line)
            if elapsed is None or on_progress is None:
                continue
            pct = media_time_to_percent(elapsed, duration_s)
            if pct is not None:
                on_progress(pct)

        stderr_output = await stderr_task
        returncode = await proc.wait()

        if returncode != 0:
            stderr_text = stderr_output.decode("utf-8", errors="replace")
            logger.error(f"[COMPOSITE] FFmpeg exited {returncode}: {stderr_text[-500:]}")
            raise ExternalToolError("ffmpeg", returncode, stderr_text)

        output = Path(output_path)
        if not output.exists() or output.stat().st_size == 0:
            raise EmptyOutputError(output_path)
        return output
