"""Single-host run lock.

Only one run may own the job store and analysis cache at a time. The lock
is an exclusive, non-blocking flock on a lock file that also records the
holder's PID for diagnostics. The kernel drops the lock when the holder
exits, so a crashed run never blocks the next one.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import IO

from vidshrink.jobs.exceptions import AlreadyRunningError, LockError

logger = logging.getLogger(__name__)


class SingletonLock:
    """Exclusive per-host lock around one vidshrink run.

    Usage::

        with SingletonLock(config.paths.lock_file):
            ...  # raises AlreadyRunningError if another run holds it

    or, for callers that want to report instead of raise::

        lock = SingletonLock(path)
        if not lock.acquire():
            ...
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._file: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def acquire(self) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True if this process now holds the lock, False if another
            process does.

        Raises:
            LockError: If the lock file cannot be created or written.
        """
        if self._file is not None:
            return True

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Append mode so a failed attempt never truncates the holder's PID
            lock_file = open(self.path, "a+", encoding="utf-8")
        except OSError as e:
            raise LockError(f"Cannot open lock file {self.path}: {e}") from e

        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_file.close()
            logger.debug("Lock %s is held by another process", self.path)
            return False
        except OSError as e:
            lock_file.close()
            raise LockError(f"Cannot lock {self.path}: {e}") from e

        try:
            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(f"{os.getpid()}\n")
            lock_file.flush()
        except OSError as e:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            lock_file.close()
            raise LockError(f"Cannot write PID to {self.path}: {e}") from e

        self._file = lock_file
        logger.debug("Lock acquired (pid %d)", os.getpid())
        return True

    def release(self) -> None:
        """Clear the recorded PID and drop the lock. Safe to call twice.

        The file is never removed: a run that opened it before the release
        must contend for the same inode as every later run.
        """
        lock_file = self._file
        if lock_file is None:
            return
        self._file = None
        try:
            lock_file.seek(0)
            lock_file.truncate()
            lock_file.flush()
        except OSError as e:
            logger.warning("Could not clear PID in %s: %s", self.path, e)
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()
        logger.debug("Lock released")

    def read_holder_pid(self) -> int | None:
        """PID written by the current holder, or None if unknown."""
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        try:
            return int(content)
        except ValueError:
            return None

    def __enter__(self) -> SingletonLock:
        if not self.acquire():
            raise AlreadyRunningError(str(self.path), self.read_holder_pid())
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
