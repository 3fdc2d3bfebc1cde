"""Decide which discovered files need a transcode.

For each file the analyzer takes the probe result from the analysis cache
or runs the prober, classifies the file, and applies this decision table:

    video codec    scaling needed    decision
    -----------    --------------    --------------------------
    not HEVC       either            transcode (convert, maybe scale)
    HEVC           yes               transcode (scale only)
    HEVC           no                skip: "already optimal"

Files without a video stream are skipped. A probe failure is an error for
that file only.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from vidshrink.config.models import VidshrinkConfig
from vidshrink.core.codecs import is_hevc
from vidshrink.introspector.interface import (
    MediaIntrospectionError,
    MediaProber,
    ProbeResult,
)
from vidshrink.jobs.overrides import JobOverrides
from vidshrink.media.classify import MediaType, classify, target_resolution
from vidshrink.media.discovery import DiscoveredFile
from vidshrink.store.analysis_cache import AnalysisCache, AnalysisRecord

logger = logging.getLogger(__name__)

SKIP_NO_VIDEO = "no video stream"
SKIP_ALREADY_OPTIMAL = "already optimal"

OverridesLookup = Callable[[Path], JobOverrides | None]


@dataclass(frozen=True)
class MediaFile:
    """An analyzed file and what should happen to it.

    Immutable once created; the scheduler hands it to exactly one job.
    """

    path: Path
    media_type: MediaType
    codec: str
    width: int
    height: int
    size: int
    duration: float | None = None
    target_width: int | None = None
    target_height: int | None = None
    needs_transcode: bool = False
    skip_reason: str | None = None
    overrides: JobOverrides | None = None

    # Media root the file was found under, for separate-mode layouts
    root: Path | None = None

    @property
    def needs_scaling(self) -> bool:
        return self.target_height is not None

    @property
    def needs_conversion(self) -> bool:
        return not is_hevc(self.codec)


@dataclass
class AnalysisResult:
    """Outcome of analyzing a batch of files."""

    to_transcode: list[MediaFile] = field(default_factory=list)
    skipped: list[tuple[Path, str]] = field(default_factory=list)
    errors: list[tuple[Path, str]] = field(default_factory=list)

    # How many probe results came from the cache
    cache_hits: int = 0

    # Files left unexamined because a stop was requested
    not_analyzed: list[Path] = field(default_factory=list)

    def type_counts(self) -> dict[MediaType, int]:
        """Files to transcode per media type, every type included."""
        counts = dict.fromkeys(MediaType, 0)
        for media in self.to_transcode:
            counts[media.media_type] += 1
        return counts


class Analyzer:
    """Probe-and-decide stage between discovery and scheduling."""

    def __init__(
        self,
        prober: MediaProber,
        cache: AnalysisCache,
        config: VidshrinkConfig,
    ) -> None:
        self.prober = prober
        self.cache = cache
        self.config = config

    def _probe(self, path: Path) -> tuple[ProbeResult, bool]:
        """Probe result for path and whether it came from the cache.

        Raises:
            MediaIntrospectionError: If probing fails.
        """
        cached = self.cache.get(path)
        if cached is not None:
            return cached.to_probe_result(), True

        try:
            stat = os.stat(path)
        except OSError as e:
            raise MediaIntrospectionError(f"Cannot stat {path}: {e}") from e

        result = self.prober.probe(path)
        self.cache.put(AnalysisRecord.from_probe(result, stat.st_size, stat.st_mtime))
        return result, False

    def decide(
        self,
        discovered: DiscoveredFile,
        probe: ProbeResult,
        overrides: JobOverrides | None = None,
    ) -> MediaFile:
        """Apply the decision table to one probed file."""
        path = discovered.path
        media_type = classify(path)
        video = probe.video
        if video is None:
            return MediaFile(
                path=path,
                media_type=media_type,
                codec="",
                width=0,
                height=0,
                size=discovered.size,
                duration=probe.duration,
                skip_reason=SKIP_NO_VIDEO,
                overrides=overrides,
                root=discovered.root,
            )

        transcode = self.config.transcode
        target = target_resolution(
            video.width,
            video.height,
            media_type,
            transcode.tv_max_height,
            transcode.movie_max_height,
            overrides.max_height if overrides is not None else None,
        )
        needs_transcode = not is_hevc(video.codec) or target is not None

        return MediaFile(
            path=path,
            media_type=media_type,
            codec=video.codec,
            width=video.width,
            height=video.height,
            size=discovered.size,
            duration=probe.duration,
            target_width=target[0] if target else None,
            target_height=target[1] if target else None,
            needs_transcode=needs_transcode,
            skip_reason=None if needs_transcode else SKIP_ALREADY_OPTIMAL,
            overrides=overrides,
            root=discovered.root,
        )

    def analyze(
        self,
        files: Iterable[DiscoveredFile],
        overrides_lookup: OverridesLookup | None = None,
        stop_event: threading.Event | None = None,
    ) -> AnalysisResult:
        """Analyze files in order.

        Args:
            files: Files that passed discovery and the job store partition.
            overrides_lookup: Returns the transcode-list overrides for a
                path, or None.
            stop_event: Checked before each file; once set, the remaining
                files go to not_analyzed without being probed.

        Returns:
            AnalysisResult with files to transcode, skips, and probe errors.
        """
        result = AnalysisResult()
        for discovered in files:
            path = discovered.path
            if stop_event is not None and stop_event.is_set():
                result.not_analyzed.append(path)
                continue
            try:
                probe, from_cache = self._probe(path)
            except MediaIntrospectionError as e:
                logger.warning("Cannot analyze %s: %s", path, e)
                result.errors.append((path, str(e)))
                continue
            if from_cache:
                result.cache_hits += 1

            overrides = overrides_lookup(path) if overrides_lookup else None
            media = self.decide(discovered, probe, overrides)
            if media.needs_transcode:
                result.to_transcode.append(media)
                logger.debug(
                    "Will transcode %s (%s %dx%d -> %s)",
                    path,
                    media.codec,
                    media.width,
                    media.height,
                    f"{media.target_width}x{media.target_height}"
                    if media.needs_scaling
                    else "same size",
                )
            else:
                result.skipped.append((path, media.skip_reason or ""))

        logger.info(
            "Analyzed %d files: %d to transcode, %d skipped, %d errors "
            "(%d from cache)",
            len(result.to_transcode) + len(result.skipped) + len(result.errors),
            len(result.to_transcode),
            len(result.skipped),
            len(result.errors),
            result.cache_hits,
        )
        if result.not_analyzed:
            logger.warning(
                "Stopped analysis early: %d files not analyzed",
                len(result.not_analyzed),
            )
        return result
