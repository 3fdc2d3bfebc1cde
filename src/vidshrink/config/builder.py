"""Configuration builder with explicit layering.

ConfigBuilder composes VidshrinkConfig from ConfigSources applied in
increasing precedence: config file, then environment, then CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from vidshrink.config.env import EnvReader
from vidshrink.config.models import (
    BitrateConfig,
    ConfigError,
    ExclusionRules,
    JobsConfig,
    LoggingConfig,
    OutputConfig,
    PathsConfig,
    ToolPathsConfig,
    TranscodeConfig,
    VidshrinkConfig,
)


@dataclass
class ConfigSource:
    """Configuration values from a single source.

    None means "not specified here" and leaves lower-precedence values
    in place.
    """

    # Paths
    media_roots: list[Path] | None = None
    temp_dir: Path | None = None
    job_store: Path | None = None
    analysis_cache: Path | None = None
    error_log: Path | None = None
    lock_file: Path | None = None

    # Tools
    ffmpeg_path: Path | None = None
    ffprobe_path: Path | None = None

    # Transcode
    tv_max_height: int | None = None
    movie_max_height: int | None = None
    bitrate_low: str | None = None
    bitrate_medium: str | None = None
    bitrate_high: str | None = None
    hardware_profile: str | None = None
    encoder_settings: dict[str, dict[str, Any]] | None = None
    video_extensions: list[str] | None = None
    exclude_directories: list[str] | None = None
    exclude_path_contains: list[str] | None = None
    exclude_path_patterns: list[str] | None = None
    exclude_file_patterns: list[str] | None = None
    transcode_list: Path | None = None

    # Output
    output_mode: str | None = None
    output_directory: Path | None = None
    output_preserve_structure: bool | None = None

    # Jobs
    max_concurrency: int | None = None
    checkpoint_interval: int | None = None
    max_attempts: int | None = None
    terminate_grace_seconds: float | None = None

    # Logging
    logging_level: str | None = None
    logging_file: Path | None = None
    logging_format: str | None = None
    logging_include_stderr: bool | None = None
    logging_max_bytes: int | None = None
    logging_backup_count: int | None = None


class ConfigBuilder:
    """Builds VidshrinkConfig by layering ConfigSources.

    Example:
        builder = ConfigBuilder()
        builder.apply(source_from_file(file_config))
        builder.apply(source_from_env(EnvReader()))
        builder.apply(ConfigSource(max_concurrency=2))
        config = builder.build(data_dir)
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def apply(self, source: ConfigSource) -> None:
        """Apply a source; its non-None values override earlier ones."""
        for field_obj in fields(source):
            value = getattr(source, field_obj.name)
            if value is not None:
                self._values[field_obj.name] = value

    def _get(self, key: str, default: Any) -> Any:
        return self._values.get(key, default)

    def build(self, data_dir: Path) -> VidshrinkConfig:
        """Build the final config, filling unset values with defaults.

        Args:
            data_dir: Directory holding the job store, cache, and error log
                when their paths are not set explicitly.

        Returns:
            Fully resolved VidshrinkConfig.

        Raises:
            ConfigError: If any section fails validation.
        """
        defaults = ExclusionRules()
        try:
            paths = PathsConfig(
                media_roots=list(self._get("media_roots", [])),
                temp_dir=self._get("temp_dir", Path("/tmp/vidshrink")),
                job_store=self._get("job_store", data_dir / "jobs.json"),
                analysis_cache=self._get(
                    "analysis_cache", data_dir / "analysis-cache.json"
                ),
                error_log=self._get("error_log", data_dir / "errors.json"),
                lock_file=self._get("lock_file", Path("/tmp/vidshrink.lock")),
            )

            tools = ToolPathsConfig(
                ffmpeg=self._get("ffmpeg_path", None),
                ffprobe=self._get("ffprobe_path", None),
            )

            bitrates = BitrateConfig(
                low=self._get("bitrate_low", "2M"),
                medium=self._get("bitrate_medium", "5M"),
                high=self._get("bitrate_high", "15M"),
            )

            exclusions = ExclusionRules(
                directories=tuple(
                    self._get("exclude_directories", defaults.directories)
                ),
                path_contains=tuple(
                    self._get("exclude_path_contains", defaults.path_contains)
                ),
                path_patterns=tuple(
                    self._get("exclude_path_patterns", defaults.path_patterns)
                ),
                file_patterns=tuple(
                    self._get("exclude_file_patterns", defaults.file_patterns)
                ),
            )

            transcode_kwargs: dict[str, Any] = {}
            if "video_extensions" in self._values:
                transcode_kwargs["video_extensions"] = tuple(
                    self._values["video_extensions"]
                )
            transcode = TranscodeConfig(
                tv_max_height=self._get("tv_max_height", 720),
                movie_max_height=self._get("movie_max_height", 1080),
                bitrates=bitrates,
                hardware_profile=self._get("hardware_profile", "auto"),
                encoder_settings=dict(self._get("encoder_settings", {})),
                exclusions=exclusions,
                transcode_list=self._get("transcode_list", None),
                **transcode_kwargs,
            )

            output = OutputConfig(
                mode=self._get("output_mode", "in-place"),
                directory=self._get("output_directory", None),
                preserve_structure=self._get("output_preserve_structure", True),
            )

            jobs = JobsConfig(
                max_concurrency=self._get("max_concurrency", 1),
                checkpoint_interval=self._get("checkpoint_interval", 5),
                max_attempts=self._get("max_attempts", 3),
                terminate_grace_seconds=self._get("terminate_grace_seconds", 10.0),
            )

            logging_config = LoggingConfig(
                level=self._get("logging_level", "info"),
                file=self._get("logging_file", None),
                format=self._get("logging_format", "text"),
                include_stderr=self._get("logging_include_stderr", False),
                max_bytes=self._get("logging_max_bytes", 10_485_760),
                backup_count=self._get("logging_backup_count", 5),
            )
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        return VidshrinkConfig(
            paths=paths,
            tools=tools,
            transcode=transcode,
            output=output,
            jobs=jobs,
            logging=logging_config,
        )


def _path(value: Any) -> Path | None:
    if not value:
        return None
    return Path(str(value)).expanduser()


def _path_list(value: Any) -> list[Path] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    return [Path(str(item)).expanduser() for item in value]


def source_from_file(file_config: dict[str, Any]) -> ConfigSource:
    """Create a ConfigSource from a parsed TOML config file.

    Expected layout::

        [paths]       media_roots, temp_dir, job_store, analysis_cache,
                      error_log, lock_file
        [tools]       ffmpeg, ffprobe
        [transcode]   tv_max_height, movie_max_height, hardware_profile,
                      video_extensions, transcode_list
        [transcode.bitrates]   low, medium, high
        [transcode.exclusions] directories, path_contains, path_patterns,
                               file_patterns
        [transcode.nvidia] / [transcode.qsv] / ...   encoder overrides
        [output]      mode, directory, preserve_structure
        [jobs]        max_concurrency, checkpoint_interval, max_attempts,
                      terminate_grace_seconds
        [logging]     level, file, format, include_stderr, max_bytes,
                      backup_count
    """
    paths = file_config.get("paths", {})
    tools = file_config.get("tools", {})
    transcode = file_config.get("transcode", {})
    bitrates = transcode.get("bitrates", {})
    exclusions = transcode.get("exclusions", {})
    output = file_config.get("output", {})
    jobs = file_config.get("jobs", {})
    logging_conf = file_config.get("logging", {})

    encoder_settings = {
        name: dict(transcode[name])
        for name in ("nvidia", "qsv", "vaapi", "rockchip", "software")
        if isinstance(transcode.get(name), dict)
    }

    return ConfigSource(
        media_roots=_path_list(paths.get("media_roots")),
        temp_dir=_path(paths.get("temp_dir")),
        job_store=_path(paths.get("job_store")),
        analysis_cache=_path(paths.get("analysis_cache")),
        error_log=_path(paths.get("error_log")),
        lock_file=_path(paths.get("lock_file")),
        ffmpeg_path=_path(tools.get("ffmpeg")),
        ffprobe_path=_path(tools.get("ffprobe")),
        tv_max_height=transcode.get("tv_max_height"),
        movie_max_height=transcode.get("movie_max_height"),
        bitrate_low=bitrates.get("low"),
        bitrate_medium=bitrates.get("medium"),
        bitrate_high=bitrates.get("high"),
        hardware_profile=transcode.get("hardware_profile"),
        encoder_settings=encoder_settings or None,
        video_extensions=transcode.get("video_extensions"),
        exclude_directories=exclusions.get("directories"),
        exclude_path_contains=exclusions.get("path_contains"),
        exclude_path_patterns=exclusions.get("path_patterns"),
        exclude_file_patterns=exclusions.get("file_patterns"),
        transcode_list=_path(transcode.get("transcode_list")),
        output_mode=output.get("mode"),
        output_directory=_path(output.get("directory")),
        output_preserve_structure=output.get("preserve_structure"),
        max_concurrency=jobs.get("max_concurrency"),
        checkpoint_interval=jobs.get("checkpoint_interval"),
        max_attempts=jobs.get("max_attempts"),
        terminate_grace_seconds=jobs.get("terminate_grace_seconds"),
        logging_level=logging_conf.get("level"),
        logging_file=_path(logging_conf.get("file")),
        logging_format=logging_conf.get("format"),
        logging_include_stderr=logging_conf.get("include_stderr"),
        logging_max_bytes=logging_conf.get("max_bytes"),
        logging_backup_count=logging_conf.get("backup_count"),
    )


def source_from_env(reader: EnvReader) -> ConfigSource:
    """Create a ConfigSource from VIDSHRINK_* environment variables."""
    return ConfigSource(
        media_roots=reader.get_path_list("VIDSHRINK_MEDIA_DIRS"),
        temp_dir=reader.get_path("VIDSHRINK_TEMP_DIR"),
        job_store=reader.get_path("VIDSHRINK_JOB_STORE"),
        analysis_cache=reader.get_path("VIDSHRINK_ANALYSIS_CACHE"),
        error_log=reader.get_path("VIDSHRINK_ERROR_LOG"),
        lock_file=reader.get_path("VIDSHRINK_LOCK_FILE"),
        ffmpeg_path=reader.get_path("VIDSHRINK_FFMPEG_PATH"),
        ffprobe_path=reader.get_path("VIDSHRINK_FFPROBE_PATH"),
        tv_max_height=reader.get_int("VIDSHRINK_TV_MAX_HEIGHT"),
        movie_max_height=reader.get_int("VIDSHRINK_MOVIE_MAX_HEIGHT"),
        hardware_profile=reader.get_str("VIDSHRINK_HARDWARE_PROFILE"),
        transcode_list=reader.get_path("VIDSHRINK_TRANSCODE_LIST"),
        output_mode=reader.get_str("VIDSHRINK_OUTPUT_MODE"),
        output_directory=reader.get_path("VIDSHRINK_OUTPUT_DIR"),
        max_concurrency=reader.get_int("VIDSHRINK_MAX_CONCURRENCY"),
        checkpoint_interval=reader.get_int("VIDSHRINK_CHECKPOINT_INTERVAL"),
        max_attempts=reader.get_int("VIDSHRINK_MAX_ATTEMPTS"),
        logging_level=reader.get_str("VIDSHRINK_LOG_LEVEL"),
        logging_file=reader.get_path("VIDSHRINK_LOG_FILE"),
        logging_format=reader.get_str("VIDSHRINK_LOG_FORMAT"),
    )
