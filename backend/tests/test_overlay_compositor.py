"""Tests for target sizing, overlay pre-scaling and the FFmpeg composite step."""

import pytest
from PIL import Image

from videoframer.exceptions import EmptyOutputError, ExternalToolError
from videoframer.render.overlay_compositor import (
    CompositeConfig,
    OverlayCompositor,
    build_composite_command,
    compute_target_dimensions,
    prescale_overlay,
)


class TestComputeTargetDimensions:
    """Uniform downscale to the cap with even rounding."""

    @pytest.mark.parametrize(
        "source, expected",
        [
            ((1920, 1080), (720, 406)),
            ((1080, 1920), (406, 720)),
            ((3840, 2160), (720, 406)),
            ((1280, 720), (720, 406)),
            ((720, 1280), (406, 720)),
            ((1000, 1000), (720, 720)),
        ],
    )
    def test_downscales_to_cap(self, source, expected):
        assert compute_target_dimensions(*source, max_dimension=720) == expected

    def test_within_cap_is_unchanged(self):
        assert compute_target_dimensions(640, 360) == (640, 360)
        assert compute_target_dimensions(720, 720) == (720, 720)

    def test_odd_sizes_become_even(self):
        assert compute_target_dimensions(641, 361) == (640, 360)
        w, h = compute_target_dimensions(1921, 1081)
        assert w % 2 == 0 and h % 2 == 0
        assert max(w, h) <= 720

    @pytest.mark.parametrize("source", [(1920, 1080), (1080, 1920), (1000, 1000), (721, 721)])
    def test_odd_cap_is_never_exceeded(self, source):
        w, h = compute_target_dimensions(*source, max_dimension=721)
        assert max(w, h) == 720
        assert w % 2 == 0 and h % 2 == 0

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            compute_target_dimensions(0, 1080)


class TestPrescaleOverlay:
    def test_output_matches_target_size_and_keeps_alpha(self, overlays_dir, tmp_path):
        output = tmp_path / "scaled.png"

        prescale_overlay(overlays_dir / "frame-gold.png", 406, 720, output)

        with Image.open(output) as img:
            assert img.size == (406, 720)
            assert img.mode == "RGBA"
            # Centre of the frame stays transparent
            assert img.getpixel((203, 360))[3] == 0

    def test_converts_opaque_images_to_rgba(self, tmp_path):
        source = tmp_path / "frame.jpg"
        Image.new("RGB", (50, 50), (255, 0, 0)).save(source)

        prescale_overlay(source, 20, 30, tmp_path / "out.png")

        with Image.open(tmp_path / "out.png") as img:
            assert img.mode == "RGBA"
            assert img.size == (20, 30)


class TestBuildCompositeCommand:
    def test_command_shape(self):
        cmd = build_composite_command(
            "ffmpeg", "in.mp4", "frame.png", "out.mp4", 406, 720, CompositeConfig()
        )

        assert cmd[0] == "ffmpeg"
        assert cmd[-1] == "out.mp4"
        fc = cmd[cmd.index("-filter_complex") + 1]
        assert "[0:v]scale=406:720:flags=fast_bilinear[scaled]" in fc
        assert "[1:v]format=rgba[frame]" in fc
        assert "[scaled][frame]overlay=0:0[out]" in fc
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-crf") + 1] == "30"
        assert cmd[cmd.index("-b:a") + 1] == "64k"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "44100"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[cmd.index("-progress") + 1] == "pipe:1"

    def test_config_from_settings(self, settings):
        settings.transform_crf = 23
        settings.transform_audio_bitrate = "96k"

        config = CompositeConfig.from_settings(settings)

        assert config.crf == 23
        assert config.audio_bitrate == "96k"


class TestOverlayCompositor:
    """Runs against a shell script standing in for ffmpeg."""

    @pytest.mark.asyncio
    async def test_reports_progress_and_returns_output(self, settings, make_tool, tmp_path):
        # Last argument is the output path; write it and emit progress blocks.
        settings.ffmpeg_path = make_tool(
            "ffmpeg",
            'for last; do :; done\n'
            'echo "out_time_us=N/A"\n'
            'echo "out_time_us=2500000"\n'
            'echo "progress=continue"\n'
            'echo "out_time_us=7500000"\n'
            'echo "progress=continue"\n'
            'printf "video" > "$last"\n'
            'echo "out_time_us=10000000"\n'
            'echo "progress=end"\n',
        )
        compositor = OverlayCompositor(settings)
        seen: list[int] = []
        output = tmp_path / "out.mp4"

        result = await compositor.composite(
            "in.mp4", "frame.png", str(output), 406, 720, 10.0, on_progress=seen.append
        )

        assert result == output
        assert seen == [25, 75, 99]

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self, settings, make_tool, tmp_path):
        settings.ffmpeg_path = make_tool("ffmpeg", 'echo "Invalid data found" >&2\nexit 1\n')
        compositor = OverlayCompositor(settings)

        with pytest.raises(ExternalToolError, match="Invalid data found") as exc_info:
            await compositor.composite("in.mp4", "frame.png", str(tmp_path / "o.mp4"), 2, 2, 1.0)

        assert exc_info.value.returncode == 1

    @pytest.mark.asyncio
    async def test_empty_output_raises(self, settings, make_tool, tmp_path):
        settings.ffmpeg_path = make_tool("ffmpeg", 'for last; do :; done\n: > "$last"\nexit 0\n')
        compositor = OverlayCompositor(settings)

        with pytest.raises(EmptyOutputError):
            await compositor.composite("in.mp4", "frame.png", str(tmp_path / "o.mp4"), 2, 2, 1.0)

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, settings, tmp_path):
        settings.ffmpeg_path = str(tmp_path / "no-such-ffmpeg")
        compositor = OverlayCompositor(settings)

        with pytest.raises(ExternalToolError, match="could not be started"):
            await compositor.composite("in.mp4", "f.png", str(tmp_path / "o.mp4"), 2, 2, 1.0)
