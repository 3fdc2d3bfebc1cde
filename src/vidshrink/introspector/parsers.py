"""Pure parsing functions for ffprobe JSON output.

No I/O happens here; ffprobe.py feeds these functions the decoded JSON.
"""

import logging
from pathlib import Path
from typing import Any

from vidshrink.introspector.interface import ProbeResult, VideoStreamInfo

logger = logging.getLogger(__name__)


def parse_int(value: Any, field_name: str, file_path: str | None = None) -> int | None:
    """Parse a non-negative integer from an ffprobe field.

    ffprobe reports some numbers as strings ("bit_rate": "4800000"), others
    as JSON numbers.

    Returns:
        The parsed value, or None if missing or invalid.
    """
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r in %s", field_name, value, file_path)
        return None
    if parsed < 0:
        logger.warning("Invalid negative %s %d in %s", field_name, parsed, file_path)
        return None
    return parsed


def parse_duration(value: Any) -> float | None:
    """Parse a duration string such as "3600.000" into seconds."""
    if value is None:
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    return duration if duration >= 0 else None


def parse_frame_rate(value: str | None) -> float | None:
    """Parse an ffprobe rational frame rate like "24000/1001"."""
    if not value:
        return None
    numerator, _, denominator = value.partition("/")
    try:
        if denominator:
            denom = float(denominator)
            if denom == 0:
                return None
            return float(numerator) / denom
        return float(numerator)
    except ValueError:
        return None


def _is_cover_art(stream: dict[str, Any]) -> bool:
    disposition = stream.get("disposition") or {}
    return bool(disposition.get("attached_pic"))


def parse_video_stream(
    stream: dict[str, Any], file_path: str | None = None
) -> VideoStreamInfo | None:
    """Build VideoStreamInfo from an ffprobe stream dict.

    Returns:
        VideoStreamInfo, or None when the stream lacks usable dimensions.
    """
    width = parse_int(stream.get("width"), "width", file_path)
    height = parse_int(stream.get("height"), "height", file_path)
    if not width or not height:
        return None
    return VideoStreamInfo(
        codec=str(stream.get("codec_name") or "unknown"),
        width=width,
        height=height,
        pixel_format=stream.get("pix_fmt"),
        bitrate=parse_int(stream.get("bit_rate"), "bit_rate", file_path),
        frame_rate=parse_frame_rate(
            stream.get("avg_frame_rate") or stream.get("r_frame_rate")
        ),
    )


def parse_ffprobe_output(path: Path, data: dict[str, Any]) -> ProbeResult:
    """Turn ffprobe's -show_streams -show_format JSON into a ProbeResult.

    The first video stream that is not embedded cover art is the primary
    video stream.

    Args:
        path: File that was probed.
        data: Decoded ffprobe JSON.

    Returns:
        ProbeResult for the file.
    """
    streams = data.get("streams") or []
    fmt = data.get("format") or {}
    file_path = str(path)

    video: VideoStreamInfo | None = None
    has_audio = False
    has_subtitles = False
    for stream in streams:
        codec_type = stream.get("codec_type")
        if codec_type == "video" and video is None and not _is_cover_art(stream):
            video = parse_video_stream(stream, file_path)
        elif codec_type == "audio":
            has_audio = True
        elif codec_type == "subtitle":
            has_subtitles = True

    return ProbeResult(
        path=path,
        video=video,
        has_audio=has_audio,
        has_subtitles=has_subtitles,
        duration=parse_duration(fmt.get("duration")),
        size=parse_int(fmt.get("size"), "size", file_path),
        format_name=fmt.get("format_name"),
    )
