"""Hardware encoder profiles.

An EncodingProfile bundles everything hardware-specific about an encode:
input-side acceleration flags, the encoder with its rate-control and
quality arguments, and how to build the scaling filter. build_arguments()
in command.py assembles these in one fixed order for every profile.

User overrides for each profile come from the config file, e.g.::

    [transcode.nvidia]
    preset = "p6"
    spatial_aq = true
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vidshrink.config.models import BitrateConfig, ConfigError

logger = logging.getLogger(__name__)


class HardwareProfile(str, Enum):
    """Selectable encoder families."""

    AUTO = "auto"
    NVIDIA = "nvidia"
    QSV = "qsv"
    VAAPI = "vaapi"
    ROCKCHIP = "rockchip"
    SOFTWARE = "software"


# HEVC encoder used by each family
PROFILE_ENCODERS: dict[HardwareProfile, str] = {
    HardwareProfile.NVIDIA: "hevc_nvenc",
    HardwareProfile.QSV: "hevc_qsv",
    HardwareProfile.VAAPI: "hevc_vaapi",
    HardwareProfile.ROCKCHIP: "hevc_rkmpp",
    HardwareProfile.SOFTWARE: "libx265",
}


# =============================================================================
# Encoder settings
# =============================================================================


class NvidiaSettings(BaseModel):
    """NVENC tuning. rc_mode "constqp" disables bitrate targeting."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    preset: str = "p5"
    tune: str = "hq"
    rc_mode: Literal["vbr", "cbr", "constqp"] = "vbr"
    lookahead: int = Field(default=20, ge=0, le=250)
    temporal_aq: bool = True
    spatial_aq: bool = False
    aq_strength: int = Field(default=8, ge=1, le=15)
    b_frames: int = Field(default=3, ge=0, le=7)
    b_ref_mode: Literal["disabled", "each", "middle"] = "middle"
    gop_size: int = Field(default=250, ge=1)


class QsvSettings(BaseModel):
    """Intel Quick Sync tuning."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    preset: Literal[
        "veryfast", "faster", "fast", "medium", "slow", "slower", "veryslow"
    ] = "medium"
    look_ahead_depth: int = Field(default=0, ge=0, le=100)
    b_frames: int = Field(default=3, ge=0, le=7)
    gop_size: int = Field(default=250, ge=1)


class VaapiSettings(BaseModel):
    """VA-API tuning. device is the DRM render node used for encoding."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    device: str = "/dev/dri/renderD128"
    rc_mode: Literal["CBR", "VBR", "CQP", "QVBR"] = "VBR"
    qp: int = Field(default=25, ge=0, le=51)
    b_frames: int = Field(default=3, ge=0, le=7)
    gop_size: int = Field(default=250, ge=1)


class RockchipSettings(BaseModel):
    """Rockchip MPP tuning. qp is only used with rc_mode CQP."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    rc_mode: Literal["VBR", "CBR", "CQP", "AVBR"] = "VBR"
    afbc: bool = True
    qp: int = Field(default=23, ge=0, le=51)


class SoftwareSettings(BaseModel):
    """libx265 tuning. Quality is CRF driven; bitrates are not used."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    preset: Literal[
        "ultrafast",
        "superfast",
        "veryfast",
        "faster",
        "fast",
        "medium",
        "slow",
        "slower",
        "veryslow",
        "placebo",
    ] = "medium"
    crf: int = Field(default=23, ge=0, le=51)
    tune: str = "none"


SETTINGS_MODELS: dict[HardwareProfile, type[BaseModel]] = {
    HardwareProfile.NVIDIA: NvidiaSettings,
    HardwareProfile.QSV: QsvSettings,
    HardwareProfile.VAAPI: VaapiSettings,
    HardwareProfile.ROCKCHIP: RockchipSettings,
    HardwareProfile.SOFTWARE: SoftwareSettings,
}


def merge_settings(
    profile: HardwareProfile, overrides: Mapping[str, Any] | None
) -> Any:
    """Merge user overrides onto a profile's default settings.

    Args:
        profile: Concrete (non-auto) hardware profile.
        overrides: Keys from the profile's config table, or None.

    Returns:
        The validated settings model.

    Raises:
        ConfigError: On unknown keys or out-of-range values.
    """
    model = SETTINGS_MODELS[profile]
    try:
        return model.model_validate(dict(overrides or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid [transcode.{profile.value}] settings: {e}") from e


def validate_encoder_settings(
    encoder_settings: Mapping[str, Mapping[str, Any]],
) -> None:
    """Validate every configured override table up front.

    Raises:
        ConfigError: If any table is invalid.
    """
    for name, overrides in encoder_settings.items():
        try:
            profile = HardwareProfile(name)
        except ValueError as e:
            raise ConfigError(f"Unknown encoder profile: {name}") from e
        if profile is HardwareProfile.AUTO:
            raise ConfigError("Encoder settings cannot be given for 'auto'")
        merge_settings(profile, overrides)


# =============================================================================
# Profile structure
# =============================================================================


@dataclass(frozen=True)
class HWAccelInput:
    """Decoder-side acceleration flags placed before -i."""

    hwaccel: str | None = None
    output_format: str | None = None
    extra_args: tuple[str, ...] = ()

    def to_args(self) -> list[str]:
        args: list[str] = []
        if self.hwaccel:
            args.extend(["-hwaccel", self.hwaccel])
        if self.output_format:
            args.extend(["-hwaccel_output_format", self.output_format])
        args.extend(self.extra_args)
        return args


@dataclass(frozen=True)
class EncoderArgs:
    encoder: str
    bitrate_args: tuple[str, ...] = ()
    quality_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScalerArgs:
    filter: str
    width: int
    height: int


@dataclass(frozen=True)
class EncodingProfile:
    """Hardware-specific encode recipe for one target bitrate."""

    name: str
    hwaccel_input: HWAccelInput
    encoder: EncoderArgs
    scaler: Callable[[int, int], ScalerArgs | None] = field(compare=False)
    bitrate: str | None = None


# =============================================================================
# Bitrates
# =============================================================================

_BITRATE_VALUE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMGkmg])?$")


def bitrate_for_height(height: int, bitrates: BitrateConfig) -> str:
    """Pick the bitrate tier for an output height (<=720, <=1080, above)."""
    if height <= 720:
        return bitrates.low
    if height <= 1080:
        return bitrates.medium
    return bitrates.high


def max_bitrate(bitrate: str) -> str:
    """Return 1.5x the bitrate, keeping its unit ("5M" -> "7.5M").

    Strings that do not parse are returned unchanged.
    """
    match = _BITRATE_VALUE.match(bitrate.strip())
    if not match:
        return bitrate
    value = float(match.group(1)) * 1.5
    unit = match.group(2) or ""
    text = str(int(value)) if value.is_integer() else f"{value:g}"
    return f"{text}{unit}"


# Encode speed as a multiple of realtime, by output height tier
_HARDWARE_SPEED = ((720, 4.0), (1080, 2.5))
_HARDWARE_SPEED_ABOVE = 1.0
_SOFTWARE_SPEED = 0.3


def estimate_encode_seconds(
    duration: float | None, height: int, hardware: bool = True
) -> float:
    """Rough wall-clock time to encode a file of the given duration.

    Unknown durations count as zero.
    """
    if not duration:
        return 0.0
    if not hardware:
        return duration / _SOFTWARE_SPEED
    for max_height, speed in _HARDWARE_SPEED:
        if height <= max_height:
            return duration / speed
    return duration / _HARDWARE_SPEED_ABOVE


# =============================================================================
# Profile builders
# =============================================================================


def _nvidia_profile(settings: NvidiaSettings, bitrate: str) -> EncodingProfile:
    quality = ["-preset", settings.preset, "-tune", settings.tune]
    quality.extend(["-rc", settings.rc_mode])
    if settings.lookahead > 0:
        quality.extend(["-rc-lookahead", str(settings.lookahead)])
    if settings.temporal_aq:
        quality.extend(["-temporal-aq", "1"])
    if settings.spatial_aq:
        quality.extend(["-spatial-aq", "1", "-aq-strength", str(settings.aq_strength)])
    quality.extend(["-bf", str(settings.b_frames)])
    if settings.b_frames > 0:
        quality.extend(["-b_ref_mode", settings.b_ref_mode])
    quality.extend(["-g", str(settings.gop_size)])
    quality.extend(["-i_qfactor", "0.75", "-b_qfactor", "1.1"])

    return EncodingProfile(
        name=HardwareProfile.NVIDIA.value,
        hwaccel_input=HWAccelInput(
            hwaccel="cuda", output_format="cuda", extra_args=("-vsync", "0")
        ),
        encoder=EncoderArgs(
            encoder=PROFILE_ENCODERS[HardwareProfile.NVIDIA],
            bitrate_args=(
                "-b:v",
                bitrate,
                "-maxrate",
                max_bitrate(bitrate),
                "-bufsize",
                bitrate,
            ),
            quality_args=tuple(quality),
        ),
        scaler=lambda w, h: ScalerArgs(f"scale_cuda={w}:{h}", w, h),
        bitrate=bitrate,
    )


def _qsv_profile(settings: QsvSettings, bitrate: str) -> EncodingProfile:
    quality = ["-preset", settings.preset]
    if settings.look_ahead_depth > 0:
        quality.extend(["-look_ahead_depth", str(settings.look_ahead_depth)])
    quality.extend(["-bf", str(settings.b_frames), "-g", str(settings.gop_size)])

    return EncodingProfile(
        name=HardwareProfile.QSV.value,
        hwaccel_input=HWAccelInput(hwaccel="qsv", output_format="qsv"),
        encoder=EncoderArgs(
            encoder=PROFILE_ENCODERS[HardwareProfile.QSV],
            bitrate_args=("-b:v", bitrate, "-maxrate", max_bitrate(bitrate)),
            quality_args=tuple(quality),
        ),
        scaler=lambda w, h: ScalerArgs(f"scale_qsv=w={w}:h={h}", w, h),
        bitrate=bitrate,
    )


def _vaapi_profile(settings: VaapiSettings, bitrate: str) -> EncodingProfile:
    quality = ["-rc_mode", settings.rc_mode]
    if settings.rc_mode == "CQP":
        quality.extend(["-qp", str(settings.qp)])
    quality.extend(["-bf", str(settings.b_frames), "-g", str(settings.gop_size)])

    return EncodingProfile(
        name=HardwareProfile.VAAPI.value,
        hwaccel_input=HWAccelInput(
            hwaccel="vaapi",
            output_format="vaapi",
            extra_args=("-vaapi_device", settings.device),
        ),
        encoder=EncoderArgs(
            encoder=PROFILE_ENCODERS[HardwareProfile.VAAPI],
            bitrate_args=("-b:v", bitrate, "-maxrate", max_bitrate(bitrate)),
            quality_args=tuple(quality),
        ),
        scaler=lambda w, h: ScalerArgs(f"scale_vaapi=w={w}:h={h}", w, h),
        bitrate=bitrate,
    )


def _rockchip_profile(settings: RockchipSettings, bitrate: str) -> EncodingProfile:
    quality = ["-rc_mode", settings.rc_mode]
    if settings.rc_mode == "CQP":
        quality.extend(["-qp_init", str(settings.qp)])

    afbc = ":afbc=1" if settings.afbc else ""
    return EncodingProfile(
        name=HardwareProfile.ROCKCHIP.value,
        hwaccel_input=HWAccelInput(
            hwaccel="rkmpp", output_format="drm_prime", extra_args=("-afbc", "rga")
        ),
        encoder=EncoderArgs(
            encoder=PROFILE_ENCODERS[HardwareProfile.ROCKCHIP],
            bitrate_args=("-b:v", bitrate, "-maxrate", max_bitrate(bitrate)),
            quality_args=tuple(quality),
        ),
        scaler=lambda w, h: ScalerArgs(
            f"scale_rkrga=w={w}:h={h}:format=nv12{afbc}", w, h
        ),
        bitrate=bitrate,
    )


def _software_profile(settings: SoftwareSettings) -> EncodingProfile:
    quality = ["-preset", settings.preset, "-crf", str(settings.crf)]
    if settings.tune != "none":
        quality.extend(["-tune", settings.tune])

    return EncodingProfile(
        name=HardwareProfile.SOFTWARE.value,
        hwaccel_input=HWAccelInput(),
        encoder=EncoderArgs(
            encoder=PROFILE_ENCODERS[HardwareProfile.SOFTWARE],
            quality_args=tuple(quality),
        ),
        scaler=lambda w, h: ScalerArgs(f"scale={w}:{h}", w, h),
    )


def create_profile(
    selection: HardwareProfile,
    target_height: int,
    bitrates: BitrateConfig,
    encoder_settings: Mapping[str, Mapping[str, Any]] | None = None,
    bitrate_override: str | None = None,
) -> EncodingProfile:
    """Build the encoding profile for one job.

    Args:
        selection: Concrete hardware profile. AUTO must be resolved with
            detect_hardware_profile() first.
        target_height: Output height, used to pick the bitrate tier.
        bitrates: Configured bitrate tiers.
        encoder_settings: Per-profile override tables from config.
        bitrate_override: Job-specific bitrate replacing the tier value.

    Returns:
        The EncodingProfile.

    Raises:
        ConfigError: If selection is AUTO or the settings are invalid.
    """
    if selection is HardwareProfile.AUTO:
        raise ConfigError("Hardware profile 'auto' must be resolved before use")

    overrides = (encoder_settings or {}).get(selection.value)
    settings = merge_settings(selection, overrides)
    bitrate = bitrate_override or bitrate_for_height(target_height, bitrates)

    if selection is HardwareProfile.NVIDIA:
        return _nvidia_profile(settings, bitrate)
    if selection is HardwareProfile.QSV:
        return _qsv_profile(settings, bitrate)
    if selection is HardwareProfile.VAAPI:
        return _vaapi_profile(settings, bitrate)
    if selection is HardwareProfile.ROCKCHIP:
        return _rockchip_profile(settings, bitrate)
    return _software_profile(settings)


class ProfileCache:
    """Reuses the last built profile while its inputs are unchanged.

    Consecutive jobs usually share a target height and bitrate override, so
    only a change in either rebuilds the profile. Owned by one run session.
    """

    def __init__(
        self,
        selection: HardwareProfile,
        bitrates: BitrateConfig,
        encoder_settings: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self.selection = selection
        self._bitrates = bitrates
        self._encoder_settings = encoder_settings
        self._key: tuple[int, str | None] | None = None
        self._profile: EncodingProfile | None = None
        self._lock = threading.Lock()

    def get(
        self, target_height: int, bitrate_override: str | None = None
    ) -> EncodingProfile:
        key = (target_height, bitrate_override)
        with self._lock:
            if self._profile is None or self._key != key:
                self._profile = create_profile(
                    self.selection,
                    target_height,
                    self._bitrates,
                    self._encoder_settings,
                    bitrate_override,
                )
                self._key = key
                logger.debug(
                    "Built %s profile for height %d",
                    self.selection.value,
                    target_height,
                    extra={"bitrate": self._profile.bitrate},
                )
            return self._profile
