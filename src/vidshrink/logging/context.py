"""Per-job logging context.

Each scheduler worker runs its job inside job_context(), and the executor
reports state changes through set_job_state(). JobContextFilter copies the
current context onto every record, so interleaved output from concurrent
encodes reads like::

    [W02 J014 encoding] Starting transcode: Show.S01E02.mkv
    [W01 J013#2 verifying] ...

where ``#2`` marks a file's second attempt across runs.
"""

from __future__ import annotations

import contextvars
import dataclasses
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class JobLogContext:
    """What a log line needs to know about the job that emitted it."""

    worker_id: str
    job_id: str | None = None
    path: str | None = None

    # 1 on the first try; earlier failed runs push it up
    attempt: int = 1

    state: str | None = None

    @property
    def tag(self) -> str:
        parts = [f"W{self.worker_id}"]
        if self.job_id:
            parts.append(
                self.job_id if self.attempt <= 1 else f"{self.job_id}#{self.attempt}"
            )
        if self.state:
            parts.append(self.state)
        return f"[{' '.join(parts)}]"

    def as_dict(self) -> dict[str, str | int]:
        fields = {
            "worker": self.worker_id,
            "id": self.job_id,
            "path": self.path,
            "attempt": self.attempt,
            "state": self.state,
        }
        return {key: value for key, value in fields.items() if value is not None}


_current: contextvars.ContextVar[JobLogContext | None] = contextvars.ContextVar(
    "vidshrink_job", default=None
)


def current_job() -> JobLogContext | None:
    return _current.get()


@contextmanager
def job_context(
    worker_id: str,
    job_id: str | None = None,
    path: Path | str | None = None,
    attempt: int = 1,
) -> Iterator[JobLogContext]:
    """Tag log records from this block with a worker and job.

    The enclosing context comes back on exit, so nesting is safe.
    """
    context = JobLogContext(
        worker_id=worker_id,
        job_id=job_id,
        path=str(path) if path is not None else None,
        attempt=attempt,
    )
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


def set_job_state(state: str) -> None:
    """Record the running job's state. Outside a job this does nothing."""
    context = _current.get()
    if context is not None:
        _current.set(dataclasses.replace(context, state=state))


class JobContextFilter(logging.Filter):
    """Attach the current job to each record.

    Sets ``record.job`` (a JobLogContext or None) for structured output and
    ``record.job_tag`` (the bracketed tag plus a space, or "") for text.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _current.get()
        record.job = context
        record.job_tag = f"{context.tag} " if context is not None else ""
        return True
