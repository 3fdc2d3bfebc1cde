"""Persistent cache of probe results.

A cached record is only trusted while the file's current size and mtime
equal the ones recorded when it was probed. Any other difference means the
file changed and must be probed again.

Document layout::

    {
      "version": 1,
      "last_updated": "2024-05-01T12:00:00+00:00",
      "records": {"/media/tv/show.mkv": {...AnalysisRecord...}}
    }
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from vidshrink.core.datetime_utils import utc_now_iso
from vidshrink.introspector.interface import ProbeResult, VideoStreamInfo
from vidshrink.store.persistence import StoreError, read_json, write_json_atomic

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


@dataclass(frozen=True)
class CachedVideoInfo:
    """Video stream facts kept in the cache."""

    codec: str
    width: int
    height: int
    bitrate: int | None = None


@dataclass(frozen=True)
class AnalysisRecord:
    """Probe outcome for one file at a given (size, mtime)."""

    path: str
    file_size: int
    file_mtime: float
    analyzed_at: str
    video: CachedVideoInfo | None
    has_audio: bool = False
    has_subtitles: bool = False
    duration: float | None = None
    format_name: str | None = None

    @classmethod
    def from_probe(
        cls, probe: ProbeResult, file_size: int, file_mtime: float
    ) -> AnalysisRecord:
        """Build a record from a fresh probe and the file's stat values."""
        video = None
        if probe.video is not None:
            video = CachedVideoInfo(
                codec=probe.video.codec,
                width=probe.video.width,
                height=probe.video.height,
                bitrate=probe.video.bitrate,
            )
        return cls(
            path=str(probe.path),
            file_size=file_size,
            file_mtime=file_mtime,
            analyzed_at=utc_now_iso(),
            video=video,
            has_audio=probe.has_audio,
            has_subtitles=probe.has_subtitles,
            duration=probe.duration,
            format_name=probe.format_name,
        )

    def to_probe_result(self) -> ProbeResult:
        """Rebuild the ProbeResult this record was made from."""
        video = None
        if self.video is not None:
            video = VideoStreamInfo(
                codec=self.video.codec,
                width=self.video.width,
                height=self.video.height,
                bitrate=self.video.bitrate,
            )
        return ProbeResult(
            path=Path(self.path),
            video=video,
            has_audio=self.has_audio,
            has_subtitles=self.has_subtitles,
            duration=self.duration,
            size=self.file_size,
            format_name=self.format_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisRecord:
        """Deserialize a record.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed.
        """
        video_data = data.get("video")
        video = None
        if video_data is not None:
            video = CachedVideoInfo(
                codec=str(video_data["codec"]),
                width=int(video_data["width"]),
                height=int(video_data["height"]),
                bitrate=video_data.get("bitrate"),
            )
        return cls(
            path=str(data["path"]),
            file_size=int(data["file_size"]),
            file_mtime=float(data["file_mtime"]),
            analyzed_at=str(data["analyzed_at"]),
            video=video,
            has_audio=bool(data.get("has_audio", False)),
            has_subtitles=bool(data.get("has_subtitles", False)),
            duration=data.get("duration"),
            format_name=data.get("format_name"),
        )


class AnalysisCache:
    """Path-keyed probe cache with (size, mtime) invalidation.

    Thread-safe: all access to the record map happens under a lock.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: dict[str, AnalysisRecord] = {}
        self._lock = threading.Lock()
        # Bumped on every change; dirty while it differs from the saved value
        self._changes = 0
        self._saved_changes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def load(self) -> None:
        """Load the cache from disk.

        A missing file starts an empty cache. A document with another
        version, or one that cannot be parsed, is discarded and rebuilt from
        scratch; the cache only saves probe time, so this is never fatal.
        """
        records: dict[str, AnalysisRecord] = {}
        try:
            data = read_json(self.path)
        except FileNotFoundError:
            logger.debug("No analysis cache at %s, starting empty", self.path)
            data = None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Analysis cache %s unreadable, rebuilding: %s", self.path, e)
            data = None

        if data is not None:
            version = data.get("version") if isinstance(data, dict) else None
            if version != CACHE_VERSION:
                logger.warning(
                    "Analysis cache version %s does not match %s, rebuilding",
                    version,
                    CACHE_VERSION,
                    extra={"cache_path": str(self.path)},
                )
            else:
                try:
                    for key, raw in (data.get("records") or {}).items():
                        records[key] = AnalysisRecord.from_dict(raw)
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning(
                        "Analysis cache %s is corrupt, rebuilding: %s", self.path, e
                    )
                    records = {}

        with self._lock:
            self._records = records
            self._changes = self._saved_changes = 0
        logger.debug("Loaded %d cached analyses", len(records))

    def save(self) -> None:
        """Write the cache to disk atomically.

        The cache stays dirty if the write fails, and also if it changed
        while the write was in progress.

        Raises:
            StoreError: If the cache cannot be written.
        """
        with self._lock:
            document = {
                "version": CACHE_VERSION,
                "last_updated": utc_now_iso(),
                "records": {k: r.to_dict() for k, r in self._records.items()},
            }
            changes = self._changes
        try:
            write_json_atomic(self.path, document)
        except OSError as e:
            raise StoreError(f"Cannot save analysis cache {self.path}: {e}") from e
        with self._lock:
            self._saved_changes = changes

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._changes != self._saved_changes

    def get(self, path: Path) -> AnalysisRecord | None:
        """Return the cached record if it is still valid for the file.

        Returns:
            The record, or None on a miss, when the file's size or mtime
            changed, or when the file cannot be stat'ed.
        """
        key = str(path)
        with self._lock:
            record = self._records.get(key)
        if record is None:
            return None

        try:
            stat = os.stat(path)
        except OSError:
            return None

        if stat.st_size != record.file_size or stat.st_mtime != record.file_mtime:
            logger.debug("Cached analysis for %s is stale", path)
            return None
        return record

    def put(self, record: AnalysisRecord) -> None:
        with self._lock:
            self._records[record.path] = record
            self._changes += 1

    def remove(self, path: Path) -> None:
        with self._lock:
            if self._records.pop(str(path), None) is not None:
                self._changes += 1
