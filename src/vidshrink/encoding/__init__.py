"""Encoder profile factory: hardware profiles and ffmpeg arguments."""

from vidshrink.encoding.command import build_arguments
from vidshrink.encoding.detection import (
    ToolNotFoundError,
    detect_hardware_profile,
    find_tool,
    list_encoders,
    require_tool,
    resolve_hardware_profile,
)
from vidshrink.encoding.profiles import (
    EncodingProfile,
    HardwareProfile,
    ProfileCache,
    bitrate_for_height,
    create_profile,
    estimate_encode_seconds,
    max_bitrate,
    validate_encoder_settings,
)

__all__ = [
    "EncodingProfile",
    "HardwareProfile",
    "ProfileCache",
    "ToolNotFoundError",
    "bitrate_for_height",
    "build_arguments",
    "create_profile",
    "detect_hardware_profile",
    "estimate_encode_seconds",
    "find_tool",
    "list_encoders",
    "max_bitrate",
    "require_tool",
    "resolve_hardware_profile",
    "validate_encoder_settings",
]
