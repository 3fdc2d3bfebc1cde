"""Configuration data models.

This module defines the dataclasses that make up VidshrinkConfig. Each
section validates its own values in __post_init__ and raises ValueError;
the builder turns those into ConfigError.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Bitrate strings as ffmpeg accepts them: "2M", "800K", "1.5M", "3000000".
BITRATE_PATTERN = re.compile(r"^\d+(\.\d+)?[KMGkmg]?$")

DEFAULT_VIDEO_EXTENSIONS: tuple[str, ...] = (
    ".mkv",
    ".mp4",
    ".avi",
    ".mov",
    ".m4v",
    ".wmv",
    ".flv",
    ".webm",
    ".ts",
    ".m2ts",
    ".mpg",
    ".mpeg",
    ".vob",
    ".divx",
    ".3gp",
)

DEFAULT_EXCLUDED_DIRECTORIES: tuple[str, ...] = (
    "karaoke",
    "singalong",
    "samples",
    "sample",
    "extras",
    "featurettes",
    "behind the scenes",
    "deleted scenes",
    "interviews",
    "trailers",
)

DEFAULT_EXCLUDED_FILE_PATTERNS: tuple[str, ...] = (
    r"-sample\.",
    r"\bsample\b",
    r"\btrailer\b",
)

VALID_HARDWARE_PROFILES = frozenset(
    {"auto", "nvidia", "qsv", "vaapi", "rockchip", "software"}
)

VALID_OUTPUT_MODES = frozenset({"in-place", "separate"})


class ConfigError(Exception):
    """Raised when configuration is missing, unreadable, or invalid."""

    pass


@dataclass
class ToolPathsConfig:
    """Paths to external tools.

    Both are optional; unset tools are looked up on PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None


@dataclass
class PathsConfig:
    """Where media lives and where vidshrink keeps its state."""

    media_roots: list[Path] = field(default_factory=list)

    # Encoder output is written here first, then moved into place
    temp_dir: Path = Path("/tmp/vidshrink")

    job_store: Path = Path.home() / ".vidshrink" / "jobs.json"
    analysis_cache: Path = Path.home() / ".vidshrink" / "analysis-cache.json"
    error_log: Path = Path.home() / ".vidshrink" / "errors.json"
    lock_file: Path = Path("/tmp/vidshrink.lock")


@dataclass(frozen=True)
class BitrateConfig:
    """Target bitrates by output height tier.

    - low: output height up to 720
    - medium: output height up to 1080
    - high: anything taller
    """

    low: str = "2M"
    medium: str = "5M"
    high: str = "15M"

    def __post_init__(self) -> None:
        """Validate configuration."""
        for name in ("low", "medium", "high"):
            value = getattr(self, name)
            if not isinstance(value, str) or not BITRATE_PATTERN.match(value):
                raise ValueError(
                    f"bitrate {name} must look like '5M' or '800K', got {value!r}"
                )


@dataclass(frozen=True)
class ExclusionRules:
    """User-configurable exclusion rules.

    Directory names match whole path segments, case-insensitively.
    path_contains entries are literal, case-insensitive substrings of the
    full path. path_patterns are regexes searched in the full path and
    file_patterns are regexes searched in the file name only.
    """

    directories: tuple[str, ...] = DEFAULT_EXCLUDED_DIRECTORIES
    path_contains: tuple[str, ...] = ()
    path_patterns: tuple[str, ...] = ()
    file_patterns: tuple[str, ...] = DEFAULT_EXCLUDED_FILE_PATTERNS


@dataclass
class TranscodeConfig:
    """What to transcode and how."""

    tv_max_height: int = 720
    movie_max_height: int = 1080

    bitrates: BitrateConfig = field(default_factory=BitrateConfig)

    # auto, nvidia, qsv, vaapi, rockchip, software
    hardware_profile: str = "auto"

    # Per-profile encoder overrides, e.g. {"nvidia": {"preset": "p6"}}
    encoder_settings: dict[str, dict[str, Any]] = field(default_factory=dict)

    video_extensions: tuple[str, ...] = DEFAULT_VIDEO_EXTENSIONS

    exclusions: ExclusionRules = field(default_factory=ExclusionRules)

    # Optional YAML list restricting which media is processed
    transcode_list: Path | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.tv_max_height < 1:
            raise ValueError(
                f"tv_max_height must be positive, got {self.tv_max_height}"
            )
        if self.movie_max_height < 1:
            raise ValueError(
                f"movie_max_height must be positive, got {self.movie_max_height}"
            )
        if self.hardware_profile not in VALID_HARDWARE_PROFILES:
            raise ValueError(
                f"hardware_profile must be one of {sorted(VALID_HARDWARE_PROFILES)}, "
                f"got {self.hardware_profile}"
            )
        unknown = set(self.encoder_settings) - (VALID_HARDWARE_PROFILES - {"auto"})
        if unknown:
            raise ValueError(
                f"encoder settings given for unknown profiles: {sorted(unknown)}"
            )
        self.video_extensions = tuple(
            ext.casefold() if ext.startswith(".") else f".{ext.casefold()}"
            for ext in self.video_extensions
        )


@dataclass
class OutputConfig:
    """Where transcoded files go.

    in-place replaces the original file; separate writes .mkv files under
    directory and leaves originals untouched.
    """

    mode: str = "in-place"
    directory: Path | None = None

    # Mirror the path relative to the media root under directory
    preserve_structure: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.mode not in VALID_OUTPUT_MODES:
            raise ValueError(
                f"output mode must be one of {sorted(VALID_OUTPUT_MODES)}, "
                f"got {self.mode}"
            )
        if self.mode == "separate" and self.directory is None:
            raise ValueError("output mode 'separate' requires an output directory")

    @property
    def in_place(self) -> bool:
        return self.mode == "in-place"


@dataclass
class JobsConfig:
    """Scheduling and retry behavior."""

    # Number of concurrent encodes
    max_concurrency: int = 1

    # Save the job store after this many completed jobs
    checkpoint_interval: int = 5

    # Failures after which a file is skipped until errors are cleared
    max_attempts: int = 3

    # Seconds between SIGTERM and SIGKILL for an encoder on shutdown
    terminate_grace_seconds: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_concurrency < 1:
            raise ValueError(
                f"max_concurrency must be at least 1, got {self.max_concurrency}"
            )
        if self.checkpoint_interval < 1:
            raise ValueError(
                "checkpoint_interval must be at least 1, "
                f"got {self.checkpoint_interval}"
            )
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.terminate_grace_seconds < 0:
            raise ValueError(
                "terminate_grace_seconds must be non-negative, "
                f"got {self.terminate_grace_seconds}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class VidshrinkConfig:
    """Complete settings for one vidshrink invocation."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    transcode: TranscodeConfig = field(default_factory=TranscodeConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
