"""Unit tests for tool lookup and hardware detection."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vidshrink.encoding.detection import (
    ToolNotFoundError,
    detect_hardware_profile,
    find_tool,
    list_encoders,
    parse_encoder_list,
    require_tool,
    resolve_hardware_profile,
)
from vidshrink.encoding.profiles import HardwareProfile

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC (codec h264)
 V....D libx265              libx265 H.265 / HEVC (codec hevc)
 V....D hevc_vaapi           H.265/HEVC (VAAPI) (codec hevc)
 A....D aac                  AAC (Advanced Audio Coding)
"""


class TestParseEncoderList:
    def test_names(self) -> None:
        encoders = parse_encoder_list(ENCODERS_OUTPUT)

        assert {"libx264", "libx265", "hevc_vaapi", "aac"} <= encoders
        assert "=" not in encoders
        assert "Encoders:" not in encoders


class TestFindTool:
    def test_configured_path_wins(self, temp_dir: Path) -> None:
        tool = temp_dir / "ffmpeg"
        tool.write_text("#!/bin/sh\n")

        assert find_tool("ffmpeg", tool) == tool

    def test_falls_back_to_path(self, temp_dir: Path) -> None:
        with patch(
            "vidshrink.encoding.detection.shutil.which",
            return_value="/usr/bin/ffmpeg",
        ):
            assert find_tool("ffmpeg", temp_dir / "missing") == Path(
                "/usr/bin/ffmpeg"
            )

    def test_require_tool_raises(self) -> None:
        with patch("vidshrink.encoding.detection.shutil.which", return_value=None):
            with pytest.raises(ToolNotFoundError, match="VIDSHRINK_FFPROBE_PATH"):
                require_tool("ffprobe")


class TestDetectHardwareProfile:
    def test_first_available_in_order(self) -> None:
        encoders = {"hevc_vaapi", "hevc_qsv", "libx265"}

        assert (
            detect_hardware_profile(Path("ffmpeg"), encoders) is HardwareProfile.QSV
        )

    def test_software_fallback(self) -> None:
        assert (
            detect_hardware_profile(Path("ffmpeg"), {"libx265"})
            is HardwareProfile.SOFTWARE
        )

    def test_queries_ffmpeg_when_not_given(self) -> None:
        completed = MagicMock(returncode=0, stdout=ENCODERS_OUTPUT, stderr="")
        with patch(
            "vidshrink.encoding.detection.subprocess.run", return_value=completed
        ):
            assert detect_hardware_profile(Path("ffmpeg")) is HardwareProfile.VAAPI

    def test_list_encoders_timeout_is_empty(self) -> None:
        with patch(
            "vidshrink.encoding.detection.subprocess.run",
            side_effect=subprocess.TimeoutExpired("ffmpeg", 10),
        ):
            assert list_encoders(Path("ffmpeg")) == set()

    def test_resolve_explicit_profile_skips_detection(self) -> None:
        with patch("vidshrink.encoding.detection.subprocess.run") as run:
            profile = resolve_hardware_profile("nvidia", Path("ffmpeg"))

        assert profile is HardwareProfile.NVIDIA
        run.assert_not_called()
