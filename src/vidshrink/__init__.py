"""vidshrink - incremental HEVC transcoding for media libraries."""

__version__ = "0.1.0"
