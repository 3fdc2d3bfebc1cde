"""Job engine for vidshrink.

- exceptions: run-level errors (lock held, lock unusable)
- lock: single-host run lock
- overrides: transcode list parsing and per-job settings
- scheduler: bounded-concurrency job execution (RunSession, TranscodeScheduler)
- runner: one full run from lock to flush (run_transcode)
- maintenance: cleanup of temp files and backups from interrupted runs
- summary: run report and store summaries

Only the dependency-free modules are re-exported here; import scheduler,
runner, maintenance and summary from their modules.
"""

from vidshrink.jobs.exceptions import AlreadyRunningError, JobControlError, LockError
from vidshrink.jobs.lock import SingletonLock
from vidshrink.jobs.overrides import (
    JobOverrides,
    JobSettings,
    TranscodeList,
    load_transcode_list,
    resolve_job_settings,
)

__all__ = [
    "AlreadyRunningError",
    "JobControlError",
    "JobOverrides",
    "JobSettings",
    "LockError",
    "SingletonLock",
    "TranscodeList",
    "load_transcode_list",
    "resolve_job_settings",
]
