"""Media probing via ffprobe."""

from vidshrink.introspector.ffprobe import FFprobeIntrospector
from vidshrink.introspector.interface import (
    MediaIntrospectionError,
    MediaProber,
    ProbeResult,
    VideoStreamInfo,
)

__all__ = [
    "FFprobeIntrospector",
    "MediaIntrospectionError",
    "MediaProber",
    "ProbeResult",
    "VideoStreamInfo",
]
