"""Prober interface and result types."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class MediaIntrospectionError(Exception):
    """Raised when a file cannot be probed."""

    pass


@dataclass(frozen=True)
class VideoStreamInfo:
    """The primary video stream of a file."""

    codec: str
    width: int
    height: int
    pixel_format: str | None = None
    bitrate: int | None = None
    frame_rate: float | None = None


@dataclass(frozen=True)
class ProbeResult:
    """What the prober reports about one file.

    video is None when the file has no video stream; that is a valid result,
    not an error.
    """

    path: Path
    video: VideoStreamInfo | None
    has_audio: bool = False
    has_subtitles: bool = False
    duration: float | None = None
    size: int | None = None
    format_name: str | None = None


class MediaProber(Protocol):
    """Protocol for prober implementations."""

    def probe(self, path: Path) -> ProbeResult:
        """Probe a media file.

        Raises:
            MediaIntrospectionError: If the file cannot be probed.
        """
        ...
