"""Centralized exit codes for all CLI commands.

Exit code ranges:
    0: Success
    1-9: General errors
    10-19: Validation errors (config, input)
    30-39: Tool/dependency errors
    40-49: Operation errors

Per-file transcode failures never change the exit code; they are reported
in the run summary and recorded in the job store.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for vidshrink CLI commands."""

    # Success (0)
    SUCCESS = 0

    # General errors (1-9)
    GENERAL_ERROR = 1
    INTERRUPTED = 2  # SIGINT/SIGTERM during a run (conventionally 130)
    ALREADY_RUNNING = 3

    # Validation errors (10-19)
    CONFIG_ERROR = 11

    # Tool/dependency errors (30-39)
    TOOL_NOT_AVAILABLE = 30

    # Operation errors (40-49)
    STORE_ERROR = 42
