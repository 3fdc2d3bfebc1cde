"""CLI commands for inspecting and clearing per-file error records."""

from __future__ import annotations

import json
import logging

import click

from vidshrink.cli.config_loader import load_config_or_exit
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.jobs.exceptions import AlreadyRunningError, LockError
from vidshrink.jobs.lock import SingletonLock
from vidshrink.jobs.summary import format_error_list
from vidshrink.store.job_store import JobStore
from vidshrink.store.persistence import StoreError

logger = logging.getLogger(__name__)


@click.group("errors")
def errors_group() -> None:
    """Inspect or clear recorded transcode failures.

    Files that fail max_attempts times are skipped by later runs until their
    errors are cleared.
    """


@errors_group.command("list")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
def errors_list(ctx: click.Context, output_format: str) -> None:
    """List recorded errors, most attempts first."""
    json_output = output_format.casefold() == "json"
    config = load_config_or_exit(ctx, json_output=json_output)
    store = JobStore(config.paths.job_store)

    try:
        with SingletonLock(config.paths.lock_file):
            store.load()
    except AlreadyRunningError as e:
        error_exit(str(e), ExitCode.ALREADY_RUNNING, json_output)
    except LockError as e:
        error_exit(str(e), ExitCode.GENERAL_ERROR, json_output)
    except StoreError as e:
        error_exit(str(e), ExitCode.STORE_ERROR, json_output)

    errors = store.errors()
    if json_output:
        click.echo(json.dumps([e.to_dict() for e in errors], indent=2))
        return
    click.echo(format_error_list(errors, config.jobs.max_attempts))


@errors_group.command("clear")
@click.pass_context
def errors_clear(ctx: click.Context) -> None:
    """Remove all error records so failed files are retried."""
    config = load_config_or_exit(ctx)
    store = JobStore(config.paths.job_store)

    try:
        with SingletonLock(config.paths.lock_file):
            store.load()
            cleared = store.clear_errors()
            store.save()
            store.save_error_log(config.paths.error_log)
    except AlreadyRunningError as e:
        error_exit(str(e), ExitCode.ALREADY_RUNNING)
    except LockError as e:
        error_exit(str(e), ExitCode.GENERAL_ERROR)
    except StoreError as e:
        error_exit(str(e), ExitCode.STORE_ERROR)

    logger.info("Cleared %d error records", cleared)
    click.echo(f"Cleared {cleared} error record{'' if cleared == 1 else 's'}.")
