"""Exceptions for run-level job control.

Per-file failures are recorded in the job store instead of being raised;
these exceptions end the whole run.
"""


class JobControlError(Exception):
    """Base exception for run-level errors."""


class LockError(JobControlError):
    """Raised when the lock file cannot be opened, locked, or written."""


class AlreadyRunningError(JobControlError):
    """Raised when another process holds the run lock.

    Attributes:
        pid: PID recorded by the holder, if readable.
    """

    def __init__(self, lock_path: str, pid: int | None = None) -> None:
        self.lock_path = lock_path
        self.pid = pid
        holder = f" (pid {pid})" if pid is not None else ""
        super().__init__(f"Another vidshrink run holds {lock_path}{holder}")
