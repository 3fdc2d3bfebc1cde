"""Bounded-concurrency scheduling of transcode jobs.

Jobs are admitted in order to a thread pool of max_concurrency workers;
a semaphore with the same bound guards the encoder itself. Each job
records its own outcome in the job store as it finishes, and the store is
checkpointed every checkpoint_interval completions so a crash loses at
most that many results (those files are simply redone on the next run).
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path

from vidshrink.analyzer import MediaFile
from vidshrink.config.models import VidshrinkConfig
from vidshrink.encoding.profiles import ProfileCache
from vidshrink.executor.transcode import JobOutcome, JobState, TranscodeExecutor
from vidshrink.jobs.lock import SingletonLock
from vidshrink.logging import job_context
from vidshrink.store.analysis_cache import AnalysisCache
from vidshrink.store.job_store import JobStore
from vidshrink.store.persistence import StoreError

logger = logging.getLogger(__name__)


@dataclass
class RunSession:
    """Everything one run owns, passed explicitly to the stages that need it."""

    config: VidshrinkConfig
    store: JobStore
    cache: AnalysisCache
    profile_cache: ProfileCache | None = None
    lock: SingletonLock | None = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    # Caps concurrent encoders at jobs.max_concurrency
    encoder_slots: threading.BoundedSemaphore = field(init=False)

    def __post_init__(self) -> None:
        self.encoder_slots = threading.BoundedSemaphore(
            self.config.jobs.max_concurrency
        )

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    def request_stop(self) -> None:
        if not self.stop_event.is_set():
            logger.warning("Stop requested: no new jobs will start")
        self.stop_event.set()


@dataclass(frozen=True)
class FailedJob:
    """A file that failed this run, with its total failure count."""

    path: Path
    error: str
    attempts: int


@dataclass
class SchedulerResult:
    """What happened to the jobs handed to the scheduler."""

    outcomes: list[JobOutcome] = field(default_factory=list)
    failures: list[FailedJob] = field(default_factory=list)

    # Jobs never started because a stop was requested
    not_started: list[Path] = field(default_factory=list)

    def _count(self, state: JobState) -> int:
        return sum(1 for o in self.outcomes if o.state is state)

    @property
    def committed(self) -> int:
        return self._count(JobState.COMMITTED)

    @property
    def reverted(self) -> int:
        return self._count(JobState.REVERTED)

    @property
    def failed(self) -> int:
        return self._count(JobState.FAILED)

    @property
    def cancelled(self) -> int:
        return self._count(JobState.CANCELLED) + len(self.not_started)

    @property
    def bytes_saved(self) -> int:
        return sum(o.bytes_saved for o in self.outcomes)


def _recordable(outcome: JobOutcome) -> JobOutcome:
    """The outcome, or a FAILED one if it cannot be recorded as it stands.

    Successes must carry a record, and only terminal states are accepted.
    """
    state = outcome.state
    done = state in (JobState.COMMITTED, JobState.REVERTED)
    if state.is_terminal and (outcome.record is not None or not done):
        return outcome
    error = f"Job ended {state.value} without a usable record"
    logger.error("%s: %s", outcome.media.path, error)
    return replace(outcome, state=JobState.FAILED, error=error, record=None)


class TranscodeScheduler:
    """Runs analyzed jobs with bounded concurrency."""

    def __init__(self, session: RunSession, executor: TranscodeExecutor) -> None:
        self.session = session
        self.executor = executor
        self._completed = 0
        self._count_lock = threading.Lock()

    @property
    def concurrency(self) -> int:
        return self.session.config.jobs.max_concurrency

    def checkpoint(self) -> None:
        """Save the job store, logging rather than raising on failure.

        The final flush at the end of the run raises; a failed checkpoint
        only widens the window of work that may be redone.
        """
        try:
            self.session.store.save()
        except StoreError as e:
            logger.error("Checkpoint failed: %s", e)
        else:
            logger.debug("Checkpoint saved after %d jobs", self._completed)

    def _record(self, outcome: JobOutcome) -> FailedJob | None:
        """Write one outcome to the job store and checkpoint if due."""
        store = self.session.store
        failure = None

        if outcome.state is JobState.FAILED:
            error = store.add_error(outcome.media.path, outcome.error or "unknown")
            failure = FailedJob(outcome.media.path, error.error, error.attempts)
        elif outcome.state is JobState.CANCELLED or outcome.record is None:
            # Cancelled jobs leave no trace; the file is retried next run
            return None
        else:
            store.add_record(outcome.record)

        with self._count_lock:
            self._completed += 1
            due = self._completed % self.session.config.jobs.checkpoint_interval == 0
        if due:
            self.checkpoint()
        return failure

    def _run_job(self, media: MediaFile, worker_id: str, job_id: str) -> JobOutcome:
        """Worker function: one job from admission to recorded outcome."""
        session = self.session
        previous = session.store.get_error(media.path)
        attempt = previous.attempts + 1 if previous is not None else 1
        with job_context(worker_id, job_id, media.path, attempt):
            if session.stopping:
                return JobOutcome(media=media, state=JobState.CANCELLED)

            logger.info("=== JOB %s: %s", job_id, media.path)
            with session.encoder_slots:
                outcome = self.executor.execute(media, session.stop_event)
            return outcome

    def run(self, jobs: list[MediaFile]) -> SchedulerResult:
        """Run jobs to completion or until a stop is requested.

        Args:
            jobs: Analyzed files needing a transcode, in admission order.

        Returns:
            SchedulerResult with every job's outcome.
        """
        result = SchedulerResult()
        if not jobs:
            return result

        workers = min(self.concurrency, len(jobs))
        id_width = len(str(len(jobs)))
        logger.info("Scheduling %d jobs on %d workers", len(jobs), workers)

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="vidshrink-worker"
        ) as pool:
            futures: dict[Future[JobOutcome], MediaFile] = {}
            for index, media in enumerate(jobs, start=1):
                # Worker ID is a logical slot for log tags, not a thread ID
                worker_id = f"{((index - 1) % workers) + 1:02d}"
                job_id = f"J{index:0{id_width}d}"
                future = pool.submit(self._run_job, media, worker_id, job_id)
                futures[future] = media

            cancelled_pending = False
            for future in as_completed(futures):
                media = futures[future]
                if self.session.stopping and not cancelled_pending:
                    for pending in futures:
                        pending.cancel()
                    cancelled_pending = True

                try:
                    outcome = future.result()
                except CancelledError:
                    result.not_started.append(media.path)
                    continue
                except Exception as e:
                    logger.exception("Unexpected error for %s: %s", media.path, e)
                    outcome = JobOutcome(
                        media=media, state=JobState.FAILED, error=str(e)
                    )

                outcome = _recordable(outcome)
                failure = self._record(outcome)
                if failure is not None:
                    result.failures.append(failure)
                result.outcomes.append(outcome)

        # Not-started jobs are reported in admission order
        order = {media.path: i for i, media in enumerate(jobs)}
        result.not_started.sort(key=order.__getitem__)

        logger.info(
            "Scheduler finished: %d committed, %d kept original, %d failed, "
            "%d cancelled",
            result.committed,
            result.reverted,
            result.failed,
            result.cancelled,
        )
        return result
