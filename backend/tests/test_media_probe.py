"""Tests for ffprobe-based probing and tool progress parsing."""

import json

import pytest

from videoframer.exceptions import ProbeError
from videoframer.utils.media_info import parse_probe, probe_video
from videoframer.utils.progress import (
    media_time_to_percent,
    parse_download_percent,
    parse_ffmpeg_out_time,
)

PROBE_OUTPUT = {
    "streams": [
        {"codec_type": "video", "codec_name": "h264", "width": 1080, "height": 1920, "duration": "14.9"},
        {"codec_type": "audio", "codec_name": "aac"},
    ],
    "format": {"duration": "15.023"},
}


class TestParseProbe:
    def test_video_with_audio(self):
        probe = parse_probe(PROBE_OUTPUT, "clip.mp4")

        assert (probe.width, probe.height) == (1080, 1920)
        assert probe.duration_s == pytest.approx(15.023)
        assert probe.has_audio is True
        assert probe.video_codec == "h264"

    def test_duration_falls_back_to_stream(self):
        data = {"streams": [{"codec_type": "video", "width": 640, "height": 360, "duration": "3.5"}], "format": {}}

        probe = parse_probe(data)

        assert probe.duration_s == pytest.approx(3.5)
        assert probe.has_audio is False

    def test_unknown_duration_is_zero(self):
        data = {"streams": [{"codec_type": "video", "width": 640, "height": 360}], "format": {"duration": "N/A"}}
        assert parse_probe(data).duration_s == 0.0

    def test_no_video_stream(self):
        with pytest.raises(ProbeError, match="No video stream"):
            parse_probe({"streams": [{"codec_type": "audio"}]}, "song.m4a")

    def test_missing_dimensions(self):
        with pytest.raises(ProbeError, match="dimensions"):
            parse_probe({"streams": [{"codec_type": "video"}]}, "broken.mp4")


class TestProbeVideo:
    """probe_video against a shell script standing in for ffprobe."""

    @pytest.mark.asyncio
    async def test_reads_json_from_ffprobe(self, make_tool, tmp_path):
        payload = tmp_path / "probe.json"
        payload.write_text(json.dumps(PROBE_OUTPUT))
        ffprobe = make_tool("ffprobe", f'cat "{payload}"\n')

        probe = await probe_video("clip.mp4", ffprobe_path=ffprobe)

        assert (probe.width, probe.height) == (1080, 1920)

    @pytest.mark.asyncio
    async def test_ffprobe_failure(self, make_tool):
        ffprobe = make_tool("ffprobe", 'echo "moov atom not found" >&2\nexit 1\n')

        with pytest.raises(ProbeError, match="moov atom not found"):
            await probe_video("corrupt.mp4", ffprobe_path=ffprobe)

    @pytest.mark.asyncio
    async def test_garbage_output(self, make_tool):
        ffprobe = make_tool("ffprobe", 'echo "not json"\n')

        with pytest.raises(ProbeError, match="parse"):
            await probe_video("clip.mp4", ffprobe_path=ffprobe)


class TestProgressParsing:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ("[download]  42.3% of 10.00MiB at 1.00MiB/s ETA 00:06", 42.3),
            ("[download] 100% of 10.00MiB in 00:00:03", 100.0),
            ("[download]   0.0% of ~  3.21MiB at  Unknown B/s ETA Unknown", 0.0),
            ("[info] Downloading 1 format(s): 0", None),
        ],
    )
    def test_download_percent(self, line, expected):
        assert parse_download_percent(line) == expected

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("out_time_us=2500000", 2.5),
            ("out_time_ms=1000000", 1.0),
            ("out_time=00:01:05.500000", 65.5),
            ("out_time_us=N/A", None),
            ("frame=120", None),
            ("progress=continue", None),
        ],
    )
    def test_ffmpeg_out_time(self, line, expected):
        assert parse_ffmpeg_out_time(line) == expected

    def test_media_time_to_percent(self):
        assert media_time_to_percent(5, 10) == 50
        assert media_time_to_percent(12, 10) == 99
        assert media_time_to_percent(-1, 10) == 0
        assert media_time_to_percent(5, 0) is None
