"""Tool lookup and hardware encoder auto-detection."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess  # nosec B404 - subprocess is required for ffmpeg detection
from pathlib import Path

from vidshrink.encoding.profiles import PROFILE_ENCODERS, HardwareProfile

logger = logging.getLogger(__name__)

DETECTION_TIMEOUT = 10

# Order in which "auto" tries hardware; software always works
DETECTION_ORDER: tuple[HardwareProfile, ...] = (
    HardwareProfile.NVIDIA,
    HardwareProfile.QSV,
    HardwareProfile.VAAPI,
    HardwareProfile.ROCKCHIP,
)

# " V....D hevc_nvenc           NVIDIA NVENC hevc encoder (codec hevc)"
_ENCODER_LINE = re.compile(r"^\s*[VASFXBDI.]{6}\s+(\S+)")


class ToolNotFoundError(Exception):
    """Raised when a required external tool cannot be located."""

    pass


def find_tool(name: str, configured_path: Path | None = None) -> Path | None:
    """Locate a tool executable.

    Args:
        name: Tool name (e.g., "ffmpeg").
        configured_path: Path from configuration, tried first.

    Returns:
        Path to the executable, or None if not found.
    """
    if configured_path is not None:
        if configured_path.is_file():
            return configured_path
        logger.warning(
            "Configured path for %s is not a file: %s", name, configured_path
        )

    found = shutil.which(name)
    return Path(found) if found else None


def require_tool(name: str, configured_path: Path | None = None) -> Path:
    """Locate a tool or raise ToolNotFoundError."""
    path = find_tool(name, configured_path)
    if path is None:
        raise ToolNotFoundError(
            f"{name} is not installed or not in PATH. Install it or set "
            f"VIDSHRINK_{name.upper()}_PATH / [tools] {name} in the config file."
        )
    return path


def parse_encoder_list(output: str) -> set[str]:
    """Parse the output of ``ffmpeg -encoders`` into encoder names."""
    encoders: set[str] = set()
    for line in output.splitlines():
        match = _ENCODER_LINE.match(line)
        if match and match.group(1) != "=":
            encoders.add(match.group(1))
    return encoders


def list_encoders(ffmpeg_path: Path) -> set[str]:
    """Ask ffmpeg which encoders it was built with.

    Returns:
        Encoder names; empty if ffmpeg could not be run.
    """
    try:
        result = subprocess.run(  # nosec B603 - fixed flags, validated tool path
            [str(ffmpeg_path), "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            errors="replace",
            timeout=DETECTION_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.warning("ffmpeg -encoders timed out after %ss", DETECTION_TIMEOUT)
        return set()
    except OSError as e:
        logger.warning("Could not run %s: %s", ffmpeg_path, e)
        return set()

    if result.returncode != 0:
        logger.warning("Failed to enumerate ffmpeg encoders: %s", result.stderr.strip())
        return set()
    return parse_encoder_list(result.stdout)


def detect_hardware_profile(
    ffmpeg_path: Path, encoders: set[str] | None = None
) -> HardwareProfile:
    """Pick the first available hardware family, else software.

    Args:
        ffmpeg_path: ffmpeg executable.
        encoders: Pre-fetched encoder names; queried from ffmpeg if None.

    Returns:
        A concrete HardwareProfile (never AUTO).
    """
    if encoders is None:
        encoders = list_encoders(ffmpeg_path)

    for profile in DETECTION_ORDER:
        if PROFILE_ENCODERS[profile] in encoders:
            logger.info(
                "Detected %s hardware encoder (%s)",
                profile.value,
                PROFILE_ENCODERS[profile],
            )
            return profile

    logger.info("No hardware encoder detected, using software encoding")
    return HardwareProfile.SOFTWARE


def resolve_hardware_profile(selection: str, ffmpeg_path: Path) -> HardwareProfile:
    """Turn the configured selection into a concrete profile, once per run."""
    profile = HardwareProfile(selection)
    if profile is HardwareProfile.AUTO:
        return detect_hardware_profile(ffmpeg_path)
    return profile
