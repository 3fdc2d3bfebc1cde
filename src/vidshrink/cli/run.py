"""The run command: one incremental transcode pass."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from vidshrink.cli.config_loader import load_config_or_exit
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.config import ConfigError, ConfigSource
from vidshrink.encoding.detection import ToolNotFoundError
from vidshrink.introspector.interface import MediaIntrospectionError
from vidshrink.jobs.exceptions import AlreadyRunningError, LockError
from vidshrink.jobs.runner import run_transcode
from vidshrink.jobs.summary import format_run_report
from vidshrink.store.persistence import StoreError

logger = logging.getLogger(__name__)


def _validate_concurrency(
    ctx: click.Context, param: click.Parameter, value: int | None
) -> int | None:
    if value is not None and value < 1:
        raise click.BadParameter("must be at least 1")
    return value


@click.command("run")
@click.option(
    "--media-dir",
    "media_dirs",
    multiple=True,
    type=click.Path(path_type=Path, file_okay=False),
    help="Media root to scan (repeatable; replaces configured roots).",
)
@click.option(
    "--concurrency",
    "-j",
    type=int,
    default=None,
    callback=_validate_concurrency,
    help="Number of concurrent encodes (default: from config or 1).",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    default=False,
    help="Show what would be transcoded without encoding anything.",
)
@click.pass_context
def run_command(
    ctx: click.Context,
    media_dirs: tuple[Path, ...],
    concurrency: int | None,
    dry_run: bool,
) -> None:
    """Find, analyze, and transcode media that is not yet HEVC or too large.

    Already transcoded files are skipped using the job store, so the command
    can be run repeatedly (for example from cron). Only one run may be
    active at a time.

    Examples:

        vidshrink run --media-dir /media/tv --media-dir /media/movies

        vidshrink run --dry-run

        vidshrink run -j 2
    """
    source = ConfigSource(
        media_roots=[p.expanduser() for p in media_dirs] or None,
        max_concurrency=concurrency,
    )
    config = load_config_or_exit(ctx, source)

    if not config.paths.media_roots:
        error_exit(
            "No media directories configured. Use --media-dir, "
            "VIDSHRINK_MEDIA_DIRS, or [paths] media_roots in the config file.",
            ExitCode.CONFIG_ERROR,
        )

    try:
        report = run_transcode(config, dry_run=dry_run)
    except AlreadyRunningError as e:
        error_exit(str(e), ExitCode.ALREADY_RUNNING)
    except ConfigError as e:
        error_exit(str(e), ExitCode.CONFIG_ERROR)
    except (ToolNotFoundError, MediaIntrospectionError) as e:
        error_exit(str(e), ExitCode.TOOL_NOT_AVAILABLE)
    except StoreError as e:
        error_exit(str(e), ExitCode.STORE_ERROR)
    except LockError as e:
        error_exit(str(e), ExitCode.GENERAL_ERROR)

    click.echo(format_run_report(report))

    if report.interrupted:
        sys.exit(ExitCode.INTERRUPTED)
    sys.exit(ExitCode.SUCCESS)
