"""Configuration loader with precedence handling.

Configuration is resolved with the following precedence (highest first):
1. CLI arguments
2. Environment variables (VIDSHRINK_*)
3. Config file (~/.vidshrink/config.toml)
4. Default values

Environment variables:
- VIDSHRINK_CONFIG_PATH: Path to the config file
- VIDSHRINK_DATA_DIR: Data directory (overrides ~/.vidshrink/)
- VIDSHRINK_MEDIA_DIRS: Media roots, separated by ":"
- VIDSHRINK_TEMP_DIR, VIDSHRINK_JOB_STORE, VIDSHRINK_ANALYSIS_CACHE,
  VIDSHRINK_ERROR_LOG, VIDSHRINK_LOCK_FILE: State locations
- VIDSHRINK_FFMPEG_PATH, VIDSHRINK_FFPROBE_PATH: Tool paths
- VIDSHRINK_HARDWARE_PROFILE: auto, nvidia, qsv, vaapi, rockchip, software
- VIDSHRINK_MAX_CONCURRENCY, VIDSHRINK_CHECKPOINT_INTERVAL,
  VIDSHRINK_MAX_ATTEMPTS: Scheduling
- VIDSHRINK_OUTPUT_MODE, VIDSHRINK_OUTPUT_DIR: Output placement
- VIDSHRINK_LOG_LEVEL, VIDSHRINK_LOG_FILE, VIDSHRINK_LOG_FORMAT: Logging
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from vidshrink.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from vidshrink.config.env import EnvReader
from vidshrink.config.models import ConfigError, VidshrinkConfig

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".vidshrink"
CONFIG_FILE_NAME = "config.toml"


def get_data_dir(env: Mapping[str, str] | None = None) -> Path:
    """Get the vidshrink data directory (VIDSHRINK_DATA_DIR or ~/.vidshrink)."""
    path = EnvReader(env).get_path("VIDSHRINK_DATA_DIR")
    return path if path is not None else DEFAULT_DATA_DIR


def get_default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the config file path (VIDSHRINK_CONFIG_PATH or <data dir>/config.toml)."""
    path = EnvReader(env).get_path("VIDSHRINK_CONFIG_PATH")
    if path is not None:
        return path
    return get_data_dir(env) / CONFIG_FILE_NAME


def load_config_file(path: Path, *, required: bool = False) -> dict[str, Any]:
    """Load and parse a TOML config file.

    Args:
        path: Path to the config file.
        required: If True, a missing file is an error. Otherwise a missing
            file yields an empty dict.

    Returns:
        Parsed configuration dict.

    Raises:
        ConfigError: If the file is required but missing, unreadable, or
            not valid TOML.
    """
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        logger.debug("No config file at %s, using defaults", path)
        return {}

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    logger.debug("Loaded config file %s", path)
    return data


def load_config(
    config_path: Path | None = None,
    cli_source: ConfigSource | None = None,
    env: Mapping[str, str] | None = None,
) -> VidshrinkConfig:
    """Resolve the effective configuration.

    Args:
        config_path: Explicit config file. When given it must exist.
        cli_source: Values from command-line options.
        env: Environment mapping (defaults to os.environ).

    Returns:
        Fully resolved VidshrinkConfig.

    Raises:
        ConfigError: If the config file or any value is invalid.
    """
    required = config_path is not None
    path = config_path if config_path is not None else get_default_config_path(env)
    file_config = load_config_file(path, required=required)

    builder = ConfigBuilder()
    builder.apply(source_from_file(file_config))
    builder.apply(source_from_env(EnvReader(env)))
    if cli_source is not None:
        builder.apply(cli_source)
    return builder.build(get_data_dir(env))
