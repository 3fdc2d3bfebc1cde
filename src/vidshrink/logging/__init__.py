"""Logging setup and per-job log context."""

from vidshrink.logging.config import configure_logging
from vidshrink.logging.context import (
    JobContextFilter,
    JobLogContext,
    current_job,
    job_context,
    set_job_state,
)
from vidshrink.logging.formatters import JSONFormatter

__all__ = [
    "JSONFormatter",
    "JobContextFilter",
    "JobLogContext",
    "configure_logging",
    "current_job",
    "job_context",
    "set_job_state",
]
