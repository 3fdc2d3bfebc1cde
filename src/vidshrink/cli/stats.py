"""CLI command for job store statistics."""

from __future__ import annotations

import json
from dataclasses import asdict

import click

from vidshrink.cli.config_loader import load_config_or_exit
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.jobs.summary import format_store_stats
from vidshrink.store.job_store import JobStore
from vidshrink.store.persistence import StoreError


@click.command("stats")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
def stats_command(ctx: click.Context, output_format: str) -> None:
    """Show completed transcodes, errors, and space saved.

    Reads the job store without taking the run lock; the store is always
    written atomically, so this is safe while a run is active.
    """
    json_output = output_format.casefold() == "json"
    config = load_config_or_exit(ctx, json_output=json_output)
    store = JobStore(config.paths.job_store)
    try:
        store.load()
    except StoreError as e:
        error_exit(str(e), ExitCode.STORE_ERROR, json_output)

    stats = store.stats(config.jobs.max_attempts)
    if json_output:
        data = asdict(stats)
        data["last_run"] = store.last_run
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(format_store_stats(stats, store.last_run))
