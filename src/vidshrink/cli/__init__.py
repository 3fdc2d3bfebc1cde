"""CLI module for vidshrink."""

from pathlib import Path

import click

from vidshrink import __version__


@click.group()
@click.version_option(__version__, prog_name="vidshrink")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: ~/.vidshrink/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """vidshrink - shrink a video library to HEVC, incrementally."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level.casefold() if log_level else None
    ctx.obj["log_file"] = log_file
    ctx.obj["log_json"] = log_json


# Defer import to avoid circular dependency
def _register_commands():
    from vidshrink.cli.detect import detect_command
    from vidshrink.cli.errors import errors_group
    from vidshrink.cli.run import run_command
    from vidshrink.cli.stats import stats_command
    from vidshrink.cli.sweep import sweep_command

    main.add_command(run_command)
    main.add_command(errors_group)
    main.add_command(stats_command)
    main.add_command(sweep_command)
    main.add_command(detect_command)


_register_commands()
