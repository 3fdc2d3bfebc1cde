"""Running the external encoder process."""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for ffmpeg invocation
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept for error reports
STDERR_TAIL_LINES = 40

# How often the wait loop checks for a stop request
POLL_INTERVAL = 0.5

# After a failed exit, how long to wait for a shutdown request that may
# have been the cause (the signal can reach the child first)
STOP_SETTLE_SECONDS = 1.0


class EncodeError(Exception):
    """Raised when the encoder cannot be started or exits unsuccessfully."""

    def __init__(self, message: str, stderr_tail: list[str] | None = None) -> None:
        super().__init__(message)
        self.stderr_tail = stderr_tail or []


@dataclass
class EncodeResult:
    """How an encoder process ended."""

    returncode: int
    stderr_tail: list[str] = field(default_factory=list)

    # True when the process was stopped by a shutdown request
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.cancelled

    def error_summary(self) -> str:
        """Last meaningful stderr line, used as the recorded error text."""
        for line in reversed(self.stderr_tail):
            if line.strip():
                return f"ffmpeg exited with code {self.returncode}: {line.strip()}"
        return f"ffmpeg exited with code {self.returncode}"


def _stop_process(process: subprocess.Popen, grace_seconds: float) -> None:
    """Terminate, then kill if the process ignores SIGTERM."""
    process.terminate()
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.warning(
            "Encoder did not exit %.0fs after SIGTERM, killing (pid %d)",
            grace_seconds,
            process.pid,
        )
        process.kill()
        process.wait()


def run_encoder(
    ffmpeg_path: Path,
    args: list[str],
    *,
    cwd: Path | None = None,
    stop_event: threading.Event | None = None,
    grace_seconds: float = 10.0,
) -> EncodeResult:
    """Run ffmpeg to completion or until a stop is requested.

    stderr is drained on a background thread so the pipe never fills; only
    the last STDERR_TAIL_LINES lines are kept.

    Args:
        ffmpeg_path: ffmpeg executable.
        args: Arguments from build_arguments().
        cwd: Working directory for the process.
        stop_event: When set, the process is terminated.
        grace_seconds: Time allowed between SIGTERM and SIGKILL.

    Returns:
        EncodeResult with exit code, stderr tail, and cancellation flag.

    Raises:
        EncodeError: If the process cannot be started.
    """
    cmd = [str(ffmpeg_path), *args]
    logger.debug("Running encoder: %s", " ".join(cmd))

    try:
        process = subprocess.Popen(  # nosec B603 - args built from a fixed template
            cmd,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            # Own session, so terminal and service-manager signals reach us,
            # not ffmpeg; shutdown goes through stop_event
            start_new_session=True,
        )
    except OSError as e:
        raise EncodeError(f"Could not start {ffmpeg_path}: {e}") from e

    tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    def read_stderr(stream: IO[str] | None) -> None:
        if stream is None:
            return
        try:
            for line in stream:
                tail.append(line.rstrip("\n"))
        except (ValueError, OSError) as e:
            logger.debug("Stderr reader stopped: %s", e)

    reader_thread = threading.Thread(
        target=read_stderr, args=(process.stderr,), daemon=True
    )
    reader_thread.start()

    cancelled = False
    while True:
        try:
            process.wait(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            pass
        if stop_event is not None and stop_event.is_set():
            logger.info("Stopping encoder (pid %d) for shutdown", process.pid)
            cancelled = True
            _stop_process(process, grace_seconds)
            break

    if (
        not cancelled
        and process.returncode != 0
        and stop_event is not None
        and stop_event.wait(STOP_SETTLE_SECONDS)
    ):
        logger.info(
            "Encoder (pid %d) exited with code %d during shutdown",
            process.pid,
            process.returncode,
        )
        cancelled = True

    reader_thread.join(timeout=5.0)
    if process.stderr is not None:
        process.stderr.close()

    return EncodeResult(
        returncode=process.returncode,
        stderr_tail=list(tail),
        cancelled=cancelled,
    )
