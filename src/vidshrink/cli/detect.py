"""CLI command showing which hardware encoder would be used."""

from __future__ import annotations

import click

from vidshrink.cli.config_loader import load_config_or_exit
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.cli.output import error_exit
from vidshrink.encoding.detection import (
    DETECTION_ORDER,
    ToolNotFoundError,
    detect_hardware_profile,
    list_encoders,
    require_tool,
)
from vidshrink.encoding.profiles import PROFILE_ENCODERS, HardwareProfile


@click.command("detect")
@click.pass_context
def detect_command(ctx: click.Context) -> None:
    """Detect available hardware HEVC encoders.

    Prints each hardware family in detection order and the profile that
    hardware_profile = "auto" resolves to.
    """
    config = load_config_or_exit(ctx)
    try:
        ffmpeg = require_tool("ffmpeg", config.tools.ffmpeg)
    except ToolNotFoundError as e:
        error_exit(str(e), ExitCode.TOOL_NOT_AVAILABLE)

    encoders = list_encoders(ffmpeg)
    click.echo(f"ffmpeg: {ffmpeg}")
    for profile in (*DETECTION_ORDER, HardwareProfile.SOFTWARE):
        encoder = PROFILE_ENCODERS[profile]
        status = "available" if encoder in encoders else "not available"
        click.echo(f"  {profile.value:<10} {encoder:<12} {status}")

    detected = detect_hardware_profile(ffmpeg, encoders)
    click.echo(f"Auto-detected profile: {detected.value}")
    if config.transcode.hardware_profile != HardwareProfile.AUTO.value:
        click.echo(f"Configured profile: {config.transcode.hardware_profile}")
