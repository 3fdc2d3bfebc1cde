"""Loading configuration for a CLI command.

The group-level options (--config and the logging overrides) are kept in
the click context; each command adds its own overrides and calls
load_config_or_exit(), which also configures logging exactly once.
"""

from __future__ import annotations

import dataclasses
import logging

import click

from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.config import ConfigError, ConfigSource, VidshrinkConfig, load_config
from vidshrink.logging import configure_logging

logger = logging.getLogger(__name__)


def load_config_or_exit(
    ctx: click.Context,
    source: ConfigSource | None = None,
    json_output: bool = False,
) -> VidshrinkConfig:
    """Resolve config for a command, exiting with CONFIG_ERROR on failure.

    Args:
        ctx: Click context holding the group-level options.
        source: Command-specific overrides (highest precedence).
        json_output: Format the error as JSON.

    Returns:
        The resolved VidshrinkConfig.
    """
    obj = ctx.ensure_object(dict)
    cli_source = dataclasses.replace(
        source or ConfigSource(),
        logging_level=obj.get("log_level"),
        logging_file=obj.get("log_file"),
        logging_format="json" if obj.get("log_json") else None,
    )

    try:
        config = load_config(obj.get("config_path"), cli_source)
    except ConfigError as e:
        error_exit(str(e), ExitCode.CONFIG_ERROR, json_output)

    if not obj.get("logging_configured"):
        configure_logging(config.logging)
        obj["logging_configured"] = True
        logger.debug(
            "Configuration loaded",
            extra={
                "media_roots": [str(p) for p in config.paths.media_roots],
                "job_store": str(config.paths.job_store),
                "hardware_profile": config.transcode.hardware_profile,
            },
        )
    return config
