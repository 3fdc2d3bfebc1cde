"""Codec name helpers."""

# Names reported by ffprobe and encoders for the HEVC family.
HEVC_CODEC_NAMES: frozenset[str] = frozenset({"hevc", "h265", "x265", "libx265"})


def normalize_codec(codec: str | None) -> str:
    """Normalize a codec name for comparison.

    Args:
        codec: Codec name as reported by ffprobe, or None.

    Returns:
        Lowercase, stripped codec name ("" for None).
    """
    if codec is None:
        return ""
    return codec.strip().casefold()


def is_hevc(codec: str | None) -> bool:
    """Check whether a codec name belongs to the HEVC family."""
    return normalize_codec(codec) in HEVC_CODEC_NAMES
