"""Configuration for vidshrink.

Use load_config() to resolve settings from the config file, environment
and CLI options.
"""

from vidshrink.config.builder import ConfigBuilder, ConfigSource
from vidshrink.config.env import EnvReader
from vidshrink.config.loader import (
    get_data_dir,
    get_default_config_path,
    load_config,
    load_config_file,
)
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

__all__ = [
    "BitrateConfig",
    "ConfigBuilder",
    "ConfigError",
    "ConfigSource",
    "EnvReader",
    "ExclusionRules",
    "JobsConfig",
    "LoggingConfig",
    "OutputConfig",
    "PathsConfig",
    "ToolPathsConfig",
    "TranscodeConfig",
    "VidshrinkConfig",
    "get_data_dir",
    "get_default_config_path",
    "load_config",
    "load_config_file",
]
