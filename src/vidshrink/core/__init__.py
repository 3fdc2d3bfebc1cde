"""Core utilities package.

Pure helper functions shared across the codebase: timestamps, size
formatting and codec family checks.
"""

from vidshrink.core.codecs import HEVC_CODEC_NAMES, is_hevc, normalize_codec
from vidshrink.core.datetime_utils import parse_iso_timestamp, utc_now_iso
from vidshrink.core.formatting import (
    format_bitrate,
    format_duration,
    format_file_size,
    format_resolution,
)

__all__ = [
    "HEVC_CODEC_NAMES",
    "format_bitrate",
    "format_duration",
    "format_file_size",
    "format_resolution",
    "is_hevc",
    "normalize_codec",
    "parse_iso_timestamp",
    "utc_now_iso",
]
