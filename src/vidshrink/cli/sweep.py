"""CLI command for cleaning up after interrupted runs."""

from __future__ import annotations

import click

from vidshrink.cli.config_loader import load_config_or_exit
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.jobs.exceptions import AlreadyRunningError, LockError
from vidshrink.jobs.lock import SingletonLock
from vidshrink.jobs.maintenance import sweep


@click.command("sweep")
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    default=False,
    help="List leftovers without removing anything.",
)
@click.pass_context
def sweep_command(ctx: click.Context, dry_run: bool) -> None:
    """Remove temp outputs and resolve backups left by interrupted runs.

    Temp files (*.transcoding.mkv) are deleted. A leftover commit backup is
    restored when its original path is empty and deleted otherwise.
    Refuses to run while a transcode run is active.
    """
    config = load_config_or_exit(ctx)
    try:
        with SingletonLock(config.paths.lock_file):
            result = sweep(
                config.paths.temp_dir, config.paths.media_roots, dry_run=dry_run
            )
    except AlreadyRunningError as e:
        error_exit(str(e), ExitCode.ALREADY_RUNNING)
    except LockError as e:
        error_exit(str(e), ExitCode.GENERAL_ERROR)

    verb = "Would remove" if dry_run else "Removed"
    for path in result.temp_files:
        click.echo(f"{verb} temp file: {path}")
    for path in result.backups:
        if dry_run:
            click.echo(f"Leftover backup: {path}")
        elif path in result.restored:
            click.echo(f"Restored from backup: {path}")
        elif all(path != failed for failed, _ in result.errors):
            click.echo(f"Removed backup: {path}")
    for path, message in result.errors:
        click.echo(f"Failed: {path}: {message}", err=True)

    if not result.temp_files and not result.backups:
        click.echo("Nothing to clean up.")
