"""Per-job pipeline: encode, verify, then commit or revert.

A job moves through these states::

    pending -> encoding -> verifying -> committed
                                     -> reverted  (output not smaller)
    encoding or verifying or commit failure -> failed
    stop requested before or during encoding -> cancelled

The executor never touches the job store; it returns a JobOutcome and the
scheduler records it.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from vidshrink.analyzer import MediaFile
from vidshrink.config.models import VidshrinkConfig
from vidshrink.core.datetime_utils import utc_now_iso
from vidshrink.core.formatting import format_file_size
from vidshrink.encoding.command import build_arguments
from vidshrink.encoding.profiles import ProfileCache
from vidshrink.executor.commit import (
    CommitError,
    compute_destination,
    relocate,
    replace_original,
)
from vidshrink.executor.encoder import EncodeError, EncodeResult, run_encoder
from vidshrink.jobs.overrides import resolve_job_settings
from vidshrink.logging import set_job_state
from vidshrink.store.job_store import TranscodeRecord

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".transcoding.mkv"

KEPT_ORIGINAL_NOTE = "kept original: transcoded file was not smaller"

EncoderRunner = Callable[..., EncodeResult]


class JobState(Enum):
    """Lifecycle state of one transcode job."""

    PENDING = "pending"
    ENCODING = "encoding"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    REVERTED = "reverted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            JobState.COMMITTED,
            JobState.REVERTED,
            JobState.FAILED,
            JobState.CANCELLED,
        )


@dataclass(frozen=True)
class JobOutcome:
    """How a job ended.

    record is set for COMMITTED and REVERTED, error for FAILED.
    """

    media: MediaFile
    state: JobState
    record: TranscodeRecord | None = None
    error: str | None = None
    output_path: Path | None = None
    elapsed: float = 0.0

    @property
    def bytes_saved(self) -> int:
        return self.record.bytes_saved if self.record is not None else 0


def temp_path_for(temp_dir: Path, source: Path) -> Path:
    """Temp output path for a source file.

    The path hash keeps same-named files from different directories apart
    when they are encoded concurrently.
    """
    digest = hashlib.sha1(str(source).encode("utf-8"), usedforsecurity=False)
    return temp_dir / f"{source.stem}.{digest.hexdigest()[:8]}{TEMP_SUFFIX}"


def _remove_temp(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)


class TranscodeExecutor:
    """Runs single transcode jobs.

    One executor is shared by all workers of a run; it keeps no per-job
    state.
    """

    def __init__(
        self,
        config: VidshrinkConfig,
        ffmpeg_path: Path,
        profile_cache: ProfileCache,
        encoder_runner: EncoderRunner = run_encoder,
    ) -> None:
        self.config = config
        self.ffmpeg_path = ffmpeg_path
        self.profile_cache = profile_cache
        self.encoder_runner = encoder_runner
        self.temp_dir = config.paths.temp_dir

    def temp_path_for(self, source: Path) -> Path:
        return temp_path_for(self.temp_dir, source)

    def _outcome(
        self,
        media: MediaFile,
        state: JobState,
        started: float,
        **kwargs,
    ) -> JobOutcome:
        set_job_state(state.value)
        return JobOutcome(
            media=media,
            state=state,
            elapsed=time.monotonic() - started,
            **kwargs,
        )

    def execute(
        self, media: MediaFile, stop_event: threading.Event | None = None
    ) -> JobOutcome:
        """Run one job to a terminal state.

        Args:
            media: Analyzed file that needs a transcode.
            stop_event: Shutdown signal; the encoder is stopped when set.

        Returns:
            JobOutcome. Expected failures are reported as FAILED outcomes,
            never raised.
        """
        started = time.monotonic()
        if stop_event is not None and stop_event.is_set():
            return self._outcome(media, JobState.CANCELLED, started)

        settings = resolve_job_settings(self.config, media.overrides)
        temp_output = self.temp_path_for(media.path)
        profile = self.profile_cache.get(
            media.target_height or media.height, settings.bitrate_override
        )
        args = build_arguments(
            profile,
            media.path,
            temp_output,
            media.target_width,
            media.target_height,
        )

        logger.info(
            "Starting transcode: %s",
            media.path.name,
            extra={
                "input_path": str(media.path),
                "input_codec": media.codec,
                "input_resolution": f"{media.width}x{media.height}",
                "target_resolution": (
                    f"{media.target_width}x{media.target_height}"
                    if media.needs_scaling
                    else None
                ),
                "profile": profile.name,
                "bitrate": profile.bitrate,
                "list_profile": (
                    media.overrides.profile_name if media.overrides else None
                ),
            },
        )

        # ENCODING
        set_job_state(JobState.ENCODING.value)
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            result = self.encoder_runner(
                self.ffmpeg_path,
                args,
                cwd=self.temp_dir,
                stop_event=stop_event,
                grace_seconds=self.config.jobs.terminate_grace_seconds,
            )
        except (EncodeError, OSError) as e:
            _remove_temp(temp_output)
            return self._outcome(media, JobState.FAILED, started, error=str(e))

        if result.cancelled:
            _remove_temp(temp_output)
            logger.info("Transcode cancelled: %s", media.path.name)
            return self._outcome(media, JobState.CANCELLED, started)

        if not result.success:
            _remove_temp(temp_output)
            logger.error(
                "Encoder failed for %s: %s",
                media.path,
                result.error_summary(),
                extra={"stderr_tail": result.stderr_tail[-10:]},
            )
            return self._outcome(
                media, JobState.FAILED, started, error=result.error_summary()
            )

        # VERIFYING
        set_job_state(JobState.VERIFYING.value)
        try:
            original_size = media.path.stat().st_size
        except OSError as e:
            _remove_temp(temp_output)
            return self._outcome(
                media,
                JobState.FAILED,
                started,
                error=f"Original disappeared during encode: {e}",
            )
        try:
            new_size = temp_output.stat().st_size
        except OSError:
            return self._outcome(
                media, JobState.FAILED, started, error="Output file was not created"
            )
        if new_size == 0:
            _remove_temp(temp_output)
            return self._outcome(
                media, JobState.FAILED, started, error="Output file is empty"
            )

        if new_size >= original_size:
            _remove_temp(temp_output)
            logger.warning(
                "Keeping original %s: transcoded file is not smaller (%s >= %s)",
                media.path.name,
                format_file_size(new_size),
                format_file_size(original_size),
            )
            record = self._record(
                media,
                started,
                original_size,
                new_size=original_size,
                new_width=media.width,
                new_height=media.height,
                note=KEPT_ORIGINAL_NOTE,
            )
            return self._outcome(media, JobState.REVERTED, started, record=record)

        # COMMIT
        try:
            if settings.in_place:
                replace_original(media.path, temp_output)
                destination = media.path
            elif settings.output_dir is None:
                raise CommitError(
                    "Separate output requested without an output directory",
                    media.path,
                )
            else:
                destination = compute_destination(
                    media.path,
                    settings.output_dir,
                    media.root,
                    settings.preserve_structure,
                )
                relocate(temp_output, destination)
        except CommitError as e:
            _remove_temp(temp_output)
            logger.error("Commit failed for %s: %s", media.path, e)
            return self._outcome(media, JobState.FAILED, started, error=str(e))

        record = self._record(
            media,
            started,
            original_size,
            new_size=new_size,
            new_width=media.target_width or media.width,
            new_height=media.target_height or media.height,
            output_path=None if settings.in_place else str(destination),
        )
        reduction = 100 - (new_size * 100 // original_size) if original_size else 0
        logger.info(
            "Transcode complete: %s (%s -> %s, %d%% smaller)",
            media.path.name,
            format_file_size(original_size),
            format_file_size(new_size),
            reduction,
            extra={"output_path": str(destination)},
        )
        return self._outcome(
            media,
            JobState.COMMITTED,
            started,
            record=record,
            output_path=destination,
        )

    def _record(
        self,
        media: MediaFile,
        started: float,
        original_size: int,
        *,
        new_size: int,
        new_width: int,
        new_height: int,
        note: str | None = None,
        output_path: str | None = None,
    ) -> TranscodeRecord:
        return TranscodeRecord(
            original_path=str(media.path),
            transcoded_at=utc_now_iso(),
            original_codec=media.codec,
            original_width=media.width,
            original_height=media.height,
            original_size=original_size,
            new_width=new_width,
            new_height=new_height,
            new_size=new_size,
            duration=round(time.monotonic() - started, 3),
            success=True,
            note=note,
            output_path=output_path,
        )
