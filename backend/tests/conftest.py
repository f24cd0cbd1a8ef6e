"""
Pytest fixtures for VideoFramer backend tests.

Everything runs against temporary directories. External tools (yt-dlp,
ffmpeg, ffprobe) are replaced by tiny shell scripts written into tmp_path,
or mocked, so no media tooling is needed to run the suite.
"""

import stat
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from videoframer.config import Settings
from videoframer.services.job_store import InMemoryJobStore


def write_overlay(path: Path, size: tuple[int, int] = (200, 300)) -> Path:
    """RGBA frame image: opaque border, transparent centre."""
    img = Image.new("RGBA", size, (212, 175, 55, 255))
    draw = ImageDraw.Draw(img)
    draw.rectangle((20, 20, size[0] - 21, size[1] - 21), fill=(0, 0, 0, 0))
    img.save(path, format="PNG")
    return path


@pytest.fixture
def overlays_dir(tmp_path: Path) -> Path:
    """Overlay directory with two frames and one non-image file."""
    directory = tmp_path / "overlays"
    directory.mkdir()
    write_overlay(directory / "frame-gold.png")
    write_overlay(directory / "frame-royal-blue.png")
    (directory / "README.txt").write_text("not an overlay")
    return directory


@pytest.fixture
def settings(tmp_path: Path, overlays_dir: Path) -> Settings:
    """Settings isolated to tmp_path, direct mode."""
    return Settings(
        storage_root=str(tmp_path / "storage"),
        overlays_dir=str(overlays_dir),
        queue_enabled=False,
        rate_limit_max_requests=3,
        rate_limit_window_s=3600,
    )


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def make_tool(tmp_path: Path) -> Callable[[str, str], str]:
    """Write an executable shell script standing in for an external tool."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make
