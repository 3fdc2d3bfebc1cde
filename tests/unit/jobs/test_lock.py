"""Unit tests for the single-host run lock."""

import fcntl
import os
from pathlib import Path

import pytest

from vidshrink.jobs.exceptions import AlreadyRunningError, LockError
from vidshrink.jobs.lock import SingletonLock


class TestSingletonLock:
    def test_acquire_writes_pid(self, temp_dir: Path) -> None:
        lock = SingletonLock(temp_dir / "run.lock")

        assert lock.acquire()
        try:
            assert lock.held
            assert lock.read_holder_pid() == os.getpid()
        finally:
            lock.release()

    def test_second_holder_is_refused(self, temp_dir: Path) -> None:
        path = temp_dir / "run.lock"
        first = SingletonLock(path)
        second = SingletonLock(path)

        assert first.acquire()
        try:
            assert not second.acquire()
            assert not second.held
            # A refused attempt must not clobber the holder's PID
            assert first.read_holder_pid() == os.getpid()
        finally:
            first.release()

    def test_release_allows_next_holder(self, temp_dir: Path) -> None:
        path = temp_dir / "run.lock"
        first = SingletonLock(path)
        first.acquire()
        first.release()

        second = SingletonLock(path)
        assert second.acquire()
        second.release()

    def test_release_clears_pid_and_is_idempotent(self, temp_dir: Path) -> None:
        path = temp_dir / "run.lock"
        lock = SingletonLock(path)
        lock.acquire()

        lock.release()
        lock.release()

        assert path.exists()
        assert lock.read_holder_pid() is None
        assert not lock.held

    def test_waiter_from_before_release_excludes_later_runs(
        self, temp_dir: Path
    ) -> None:
        path = temp_dir / "run.lock"
        first = SingletonLock(path)
        assert first.acquire()
        waiter = open(path, "a+", encoding="utf-8")
        try:
            first.release()
            fcntl.flock(waiter.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

            assert not SingletonLock(path).acquire()
        finally:
            waiter.close()

    def test_context_manager_raises_when_held(self, temp_dir: Path) -> None:
        path = temp_dir / "run.lock"

        with SingletonLock(path):
            with pytest.raises(AlreadyRunningError) as exc_info:
                with SingletonLock(path):
                    pass

        assert exc_info.value.pid == os.getpid()
        assert str(os.getpid()) in str(exc_info.value)
        assert SingletonLock(path).read_holder_pid() is None

    def test_unusable_path_raises_lock_error(self, temp_dir: Path) -> None:
        blocker = temp_dir / "file"
        blocker.write_text("x")

        with pytest.raises(LockError):
            SingletonLock(blocker / "run.lock").acquire()

    def test_holder_pid_unreadable(self, temp_dir: Path) -> None:
        path = temp_dir / "run.lock"
        path.write_text("garbage")

        assert SingletonLock(path).read_holder_pid() is None
        assert SingletonLock(temp_dir / "missing").read_holder_pid() is None
