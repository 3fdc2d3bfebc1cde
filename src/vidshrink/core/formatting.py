"""Formatting utilities.

Pure functions for presenting sizes, durations and resolutions in
reports and CLI output.
"""


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: File size in bytes. Negative values keep their sign.

    Returns:
        Formatted string (e.g., "4.2 GB", "128.0 MB", "1.5 KB").
    """
    sign = "-" if size_bytes < 0 else ""
    size = abs(size_bytes)
    if size >= 1024**4:
        return f"{sign}{size / (1024**4):.2f} TB"
    elif size >= 1024**3:
        return f"{sign}{size / (1024**3):.1f} GB"
    elif size >= 1024**2:
        return f"{sign}{size / (1024**2):.1f} MB"
    elif size >= 1024:
        return f"{sign}{size / 1024:.1f} KB"
    else:
        return f"{sign}{size} B"


def format_duration(seconds: float | None) -> str:
    """Format a duration in seconds as H:MM:SS (or M:SS under an hour)."""
    if seconds is None or seconds < 0:
        return "—"
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_resolution(width: int | None, height: int | None) -> str:
    """Format dimensions as WIDTHxHEIGHT, or a dash if unknown."""
    if not width or not height:
        return "—"
    return f"{width}x{height}"


def format_bitrate(bits_per_second: int | None) -> str:
    """Format a bitrate in bits per second (e.g., "4.8 Mbps")."""
    if not bits_per_second:
        return "—"
    if bits_per_second >= 1_000_000:
        return f"{bits_per_second / 1_000_000:.1f} Mbps"
    if bits_per_second >= 1_000:
        return f"{bits_per_second / 1_000:.0f} kbps"
    return f"{bits_per_second} bps"
