"""One full vidshrink run.

Order of operations:

1. take the run lock
2. load the job store and analysis cache
3. discover files, apply the transcode list, partition by job store
4. analyze (probe or cache) and record probe errors
5. dry run: report the plan; otherwise schedule the jobs
6. flush the store, cache, and error log, then release the lock

SIGINT and SIGTERM only request a stop: queued jobs are not started,
running encoders are terminated, and step 6 still happens.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from vidshrink.analyzer import AnalysisResult, Analyzer
from vidshrink.config.models import VidshrinkConfig
from vidshrink.core.datetime_utils import utc_now_iso
from vidshrink.core.formatting import format_duration
from vidshrink.encoding.detection import (
    ToolNotFoundError,
    require_tool,
    resolve_hardware_profile,
)
from vidshrink.encoding.profiles import (
    HardwareProfile,
    ProfileCache,
    estimate_encode_seconds,
    validate_encoder_settings,
)
from vidshrink.executor.encoder import run_encoder
from vidshrink.executor.transcode import EncoderRunner, TranscodeExecutor
from vidshrink.introspector.ffprobe import FFprobeIntrospector
from vidshrink.introspector.interface import MediaProber
from vidshrink.jobs.exceptions import AlreadyRunningError
from vidshrink.jobs.lock import SingletonLock
from vidshrink.jobs.overrides import (
    NOT_IN_LIST_REASON,
    JobOverrides,
    TranscodeList,
    load_transcode_list,
)
from vidshrink.jobs.scheduler import (
    FailedJob,
    RunSession,
    SchedulerResult,
    TranscodeScheduler,
)
from vidshrink.media.classify import ExclusionMatcher, MediaType, classify
from vidshrink.media.discovery import DiscoveredFile, DiscoveryResult, discover
from vidshrink.store.analysis_cache import AnalysisCache
from vidshrink.store.job_store import JobStore, partition
from vidshrink.store.persistence import StoreError

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Everything a run did, for the end-of-run summary."""

    dry_run: bool = False
    started_at: str = field(default_factory=utc_now_iso)
    elapsed: float = 0.0
    hardware_profile: str | None = None

    discovery: DiscoveryResult = field(default_factory=DiscoveryResult)

    # Files the transcode list did not select
    not_in_list: int = 0

    already_done: int = 0
    permanently_failed: list[Path] = field(default_factory=list)

    analysis: AnalysisResult = field(default_factory=AnalysisResult)

    # Rough encode time for the planned jobs, in seconds
    estimated_seconds: float = 0.0

    scheduler: SchedulerResult | None = None

    # Probe and job failures, with the attempt count after this run
    failures: list[FailedJob] = field(default_factory=list)

    interrupted: bool = False

    @property
    def bytes_saved(self) -> int:
        return self.scheduler.bytes_saved if self.scheduler else 0


@contextmanager
def _stop_on_signals(session: RunSession) -> Iterator[None]:
    """Route SIGINT/SIGTERM to session.request_stop() for the block.

    Handlers can only be installed from the main thread; elsewhere this is
    a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: object) -> None:
        logger.warning(
            "Received %s, finishing up",
            signal.Signals(signum).name,
        )
        session.request_stop()

    previous = {
        sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def select_from_list(
    files: list[DiscoveredFile], transcode_list: TranscodeList
) -> tuple[list[DiscoveredFile], dict[Path, JobOverrides], list[Path]]:
    """Keep files a transcode list selects.

    Returns:
        (selected files, overrides by path, paths not selected)
    """
    selected: list[DiscoveredFile] = []
    overrides: dict[Path, JobOverrides] = {}
    rejected: list[Path] = []
    for discovered in files:
        item = transcode_list.match(discovered.path, classify(discovered.path))
        if item is None:
            rejected.append(discovered.path)
            continue
        selected.append(discovered)
        overrides[discovered.path] = item
    return selected, overrides, rejected


def _save_cache(cache: AnalysisCache) -> None:
    if not cache.dirty:
        return
    try:
        cache.save()
    except StoreError as e:
        # The cache only saves probe time; losing it is not fatal
        logger.warning("Could not save analysis cache: %s", e)


def _flush(session: RunSession, *, dry_run: bool) -> None:
    """Persist everything the run changed.

    Raises:
        StoreError: If the job store cannot be saved.
    """
    _save_cache(session.cache)
    if dry_run or not session.store.loaded:
        return

    session.store.save()
    try:
        session.store.save_error_log(session.config.paths.error_log)
    except StoreError as e:
        logger.warning("%s", e)


def _discover(
    config: VidshrinkConfig,
    report: RunReport,
    transcode_list: TranscodeList | None,
) -> tuple[list[DiscoveredFile], Callable[[Path], JobOverrides | None] | None]:
    transcode = config.transcode
    matcher = ExclusionMatcher.from_rules(transcode.exclusions)
    report.discovery = discover(
        config.paths.media_roots, transcode.video_extensions, matcher
    )
    files = report.discovery.files
    if transcode_list is None:
        return files, None

    selected, overrides, rejected = select_from_list(files, transcode_list)
    report.not_in_list = len(rejected)
    report.discovery.excluded.extend((path, NOT_IN_LIST_REASON) for path in rejected)
    logger.info("Transcode list selected %d of %d files", len(selected), len(files))
    return selected, overrides.get


@contextmanager
def _no_signals() -> Iterator[None]:
    yield


def run_transcode(
    config: VidshrinkConfig,
    *,
    dry_run: bool = False,
    prober: MediaProber | None = None,
    ffmpeg_path: Path | None = None,
    encoder_runner: EncoderRunner = run_encoder,
    handle_signals: bool = True,
) -> RunReport:
    """Run discovery, analysis, and transcoding once.

    Args:
        config: Resolved configuration.
        dry_run: Plan only; nothing is encoded and the job store is not
            written.
        prober: Prober to use; an FFprobeIntrospector by default.
        ffmpeg_path: ffmpeg executable; looked up from config/PATH if None.
        encoder_runner: Encoder process runner (replaceable in tests).
        handle_signals: Install SIGINT/SIGTERM handlers for the run.

    Returns:
        RunReport for the run. Per-file failures are in the report, not
        raised.

    Raises:
        ConfigError: If encoder settings or the transcode list are invalid.
        ToolNotFoundError: If ffmpeg or ffprobe cannot be found.
        AlreadyRunningError: If another run holds the lock.
        LockError: If the lock file cannot be used.
        StoreError: If the job store cannot be loaded or saved.
    """
    started = time.monotonic()
    report = RunReport(dry_run=dry_run)

    # Everything that can fail without touching shared state happens first
    validate_encoder_settings(config.transcode.encoder_settings)
    list_path = config.transcode.transcode_list
    transcode_list = load_transcode_list(list_path) if list_path else None
    if prober is None:
        prober = FFprobeIntrospector(require_tool("ffprobe", config.tools.ffprobe))
    if ffmpeg_path is None and not dry_run:
        ffmpeg_path = require_tool("ffmpeg", config.tools.ffmpeg)

    lock = SingletonLock(config.paths.lock_file)
    if not lock.acquire():
        raise AlreadyRunningError(str(lock.path), lock.read_holder_pid())

    session = RunSession(
        config=config,
        store=JobStore(config.paths.job_store),
        cache=AnalysisCache(config.paths.analysis_cache),
        lock=lock,
    )
    logger.info(
        "Starting %s over %d media roots",
        "dry run" if dry_run else "run",
        len(config.paths.media_roots),
    )

    try:
        session.store.load()
        session.cache.load()
        signals = _stop_on_signals(session) if handle_signals else _no_signals()
        with signals:
            files, overrides_lookup = _discover(config, report, transcode_list)
            _run_stages(
                session,
                report,
                files,
                overrides_lookup,
                prober,
                ffmpeg_path,
                encoder_runner,
            )
        _flush(session, dry_run=dry_run)
    except BaseException:
        # Keep whatever was recorded before the error, then re-raise
        try:
            _flush(session, dry_run=dry_run)
        except StoreError as e:
            logger.error("Final flush failed: %s", e)
        raise
    finally:
        lock.release()

    report.interrupted = session.stopping
    report.elapsed = time.monotonic() - started
    logger.info(
        "Run finished in %.1fs%s",
        report.elapsed,
        " (interrupted)" if report.interrupted else "",
    )
    return report


def _run_stages(
    session: RunSession,
    report: RunReport,
    files: list[DiscoveredFile],
    overrides_lookup: Callable[[Path], JobOverrides | None] | None,
    prober: MediaProber,
    ffmpeg_path: Path | None,
    encoder_runner: EncoderRunner,
) -> None:
    config = session.config
    split = partition(files, session.store, config.jobs.max_attempts)
    report.already_done = len(split.already_done)
    report.permanently_failed = [f.path for f in split.permanently_failed]
    logger.info(
        "%d files to analyze, %d already done, %d permanently failed",
        len(split.to_analyze),
        report.already_done,
        len(report.permanently_failed),
    )

    analyzer = Analyzer(prober, session.cache, config)
    report.analysis = analyzer.analyze(
        split.to_analyze, overrides_lookup, stop_event=session.stop_event
    )

    # Probe failures during shutdown are usually the signal itself
    if not report.dry_run and not session.stopping:
        for path, message in report.analysis.errors:
            error = session.store.add_error(path, message)
            report.failures.append(FailedJob(path, error.error, error.attempts))

    # Probe results are expensive; keep them even if the encode stage dies
    _save_cache(session.cache)

    jobs = report.analysis.to_transcode
    # Largest first: the biggest savings land before any interruption
    jobs.sort(key=lambda media: media.size, reverse=True)
    hardware = config.transcode.hardware_profile != HardwareProfile.SOFTWARE.value
    report.estimated_seconds = sum(
        estimate_encode_seconds(
            media.duration, media.target_height or media.height, hardware
        )
        for media in jobs
    )
    counts = report.analysis.type_counts()
    logger.info(
        "%d files to transcode (tv %d, movie %d, other %d), estimated %s",
        len(jobs),
        counts[MediaType.TV],
        counts[MediaType.MOVIE],
        counts[MediaType.OTHER],
        format_duration(report.estimated_seconds),
    )

    if report.dry_run or session.stopping or not jobs:
        return

    if ffmpeg_path is None:
        raise ToolNotFoundError("ffmpeg path was not resolved for an encoding run")
    selection = resolve_hardware_profile(config.transcode.hardware_profile, ffmpeg_path)
    report.hardware_profile = selection.value
    session.profile_cache = ProfileCache(
        selection, config.transcode.bitrates, config.transcode.encoder_settings
    )
    executor = TranscodeExecutor(
        config, ffmpeg_path, session.profile_cache, encoder_runner=encoder_runner
    )
    scheduler = TranscodeScheduler(session, executor)
    report.scheduler = scheduler.run(report.analysis.to_transcode)
    report.failures.extend(report.scheduler.failures)
