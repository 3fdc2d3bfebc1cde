"""Persistent record of completed transcodes and per-file failures.

The job store is what makes runs incremental: a path with a successful
TranscodeRecord is never processed again, and a path whose ErrorRecord
has reached the attempt limit is skipped until errors are cleared.

Document layout (version 2)::

    {
      "version": 2,
      "last_run": "2024-05-01T12:00:00+00:00",
      "records": {"/media/tv/show.mkv": {...TranscodeRecord...}},
      "errors": {"/media/tv/other.mkv": {...ErrorRecord...}}
    }

Version 1 documents used camelCase keys; they are migrated on load.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vidshrink.core.datetime_utils import utc_now_iso
from vidshrink.store.persistence import StoreError, read_json, write_json_atomic

if TYPE_CHECKING:
    from vidshrink.media.discovery import DiscoveredFile

logger = logging.getLogger(__name__)

STORE_VERSION = 2

# Failures after which a path is skipped until errors are cleared
MAX_ATTEMPTS = 3

_V1_RECORD_KEYS = {
    "originalPath": "original_path",
    "transcodedAt": "transcoded_at",
    "originalCodec": "original_codec",
    "originalWidth": "original_width",
    "originalHeight": "original_height",
    "originalSize": "original_size",
    "newWidth": "new_width",
    "newHeight": "new_height",
    "newSize": "new_size",
    "duration": "duration",
    "success": "success",
    "error": "note",
}


@dataclass(frozen=True)
class TranscodeRecord:
    """Outcome of a finished job for one path.

    success=True marks the path done, including the case where the encode
    was not smaller and the original was kept (see note).
    """

    original_path: str
    transcoded_at: str
    original_codec: str
    original_width: int
    original_height: int
    original_size: int
    new_width: int
    new_height: int
    new_size: int
    duration: float
    success: bool = True
    note: str | None = None
    output_path: str | None = None

    @property
    def bytes_saved(self) -> int:
        if not self.success:
            return 0
        return max(self.original_size - self.new_size, 0)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscodeRecord:
        return cls(
            original_path=str(data["original_path"]),
            transcoded_at=str(data["transcoded_at"]),
            original_codec=str(data.get("original_codec") or ""),
            original_width=int(data.get("original_width") or 0),
            original_height=int(data.get("original_height") or 0),
            original_size=int(data.get("original_size") or 0),
            new_width=int(data.get("new_width") or 0),
            new_height=int(data.get("new_height") or 0),
            new_size=int(data.get("new_size") or 0),
            duration=float(data.get("duration") or 0.0),
            success=bool(data.get("success", True)),
            note=data.get("note"),
            output_path=data.get("output_path"),
        )


@dataclass
class ErrorRecord:
    """Most recent failure for a path and how many times it has failed."""

    path: str
    error: str
    timestamp: str
    attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorRecord:
        return cls(
            path=str(data["path"]),
            error=str(data.get("error") or ""),
            timestamp=str(data.get("timestamp") or ""),
            attempts=int(data.get("attempts") or 1),
        )


@dataclass(frozen=True)
class StoreStats:
    """Aggregate numbers for reporting."""

    completed: int
    kept_original: int
    errors: int
    permanently_failed: int
    bytes_saved: int


@dataclass
class Partition:
    """Discovered files split by what the job store says about them."""

    to_analyze: list[DiscoveredFile] = field(default_factory=list)
    already_done: list[DiscoveredFile] = field(default_factory=list)
    permanently_failed: list[DiscoveredFile] = field(default_factory=list)


def migrate_v1(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a version 1 (camelCase) document to the current layout.

    Unknown keys are carried over unchanged so no data is lost.
    """
    records: dict[str, Any] = {}
    for key, raw in (data.get("records") or {}).items():
        converted = {_V1_RECORD_KEYS.get(k, k): v for k, v in raw.items()}
        converted.setdefault("original_path", key)
        records[key] = converted

    errors: dict[str, Any] = {}
    for key, raw in (data.get("errors") or {}).items():
        converted = dict(raw)
        converted.setdefault("path", key)
        errors[key] = converted

    return {
        "version": STORE_VERSION,
        "last_run": data.get("lastRun") or data.get("last_run"),
        "records": records,
        "errors": errors,
    }


class JobStore:
    """In-memory job store backed by one JSON file.

    Record and error maps share one lock, so a success record and the
    removal of that path's error happen as a single mutation.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.last_run: str | None = None

        # False until load() succeeds; an unloaded store must never be saved
        self.loaded = False
        self._records: dict[str, TranscodeRecord] = {}
        self._errors: dict[str, ErrorRecord] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        """Load the store from disk.

        A missing file starts an empty store.

        Raises:
            StoreError: If the file exists but cannot be read or parsed, or
                has an unsupported version.
        """
        try:
            data = read_json(self.path)
        except FileNotFoundError:
            logger.info("No job store at %s, starting a new one", self.path)
            with self._lock:
                self._records, self._errors, self.last_run = {}, {}, None
                self.loaded = True
            return
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read job store {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreError(f"Job store {self.path} is not a JSON object")

        version = data.get("version")
        if version == 1:
            logger.warning(
                "Migrating job store %s from version 1 to %d",
                self.path,
                STORE_VERSION,
            )
            data = migrate_v1(data)
        elif version != STORE_VERSION:
            raise StoreError(
                f"Unsupported job store version {version!r} in {self.path}"
            )

        try:
            records = {
                key: TranscodeRecord.from_dict(raw)
                for key, raw in (data.get("records") or {}).items()
            }
            errors = {
                key: ErrorRecord.from_dict(raw)
                for key, raw in (data.get("errors") or {}).items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreError(f"Job store {self.path} is corrupt: {e}") from e

        with self._lock:
            self._records = records
            self._errors = errors
            self.last_run = data.get("last_run")
            self.loaded = True

        logger.info(
            "Loaded job store with %d records and %d errors",
            len(records),
            len(errors),
            extra={"store_path": str(self.path)},
        )

    def save(self) -> None:
        """Write the store to disk atomically and stamp last_run.

        Raises:
            StoreError: If the file cannot be written.
        """
        with self._lock:
            self.last_run = utc_now_iso()
            document = {
                "version": STORE_VERSION,
                "last_run": self.last_run,
                "records": {k: r.to_dict() for k, r in self._records.items()},
                "errors": {k: e.to_dict() for k, e in self._errors.items()},
            }
        try:
            write_json_atomic(self.path, document)
        except OSError as e:
            raise StoreError(f"Cannot save job store {self.path}: {e}") from e
        logger.debug("Saved job store with %d records", len(document["records"]))

    def is_done(self, path: Path | str) -> bool:
        with self._lock:
            record = self._records.get(str(path))
        return record is not None and record.success

    def get_record(self, path: Path | str) -> TranscodeRecord | None:
        with self._lock:
            return self._records.get(str(path))

    def get_error(self, path: Path | str) -> ErrorRecord | None:
        with self._lock:
            return self._errors.get(str(path))

    def add_record(self, record: TranscodeRecord) -> None:
        """Store a finished job and clear any error for its path."""
        with self._lock:
            self._records[record.original_path] = record
            self._errors.pop(record.original_path, None)
        logger.debug("Recorded transcode for %s", record.original_path)

    def add_error(self, path: Path | str, message: str) -> ErrorRecord:
        """Record a failure, incrementing the attempt count for repeat failures.

        Returns:
            The updated ErrorRecord (a copy).
        """
        key = str(path)
        now = utc_now_iso()
        with self._lock:
            existing = self._errors.get(key)
            if existing is None:
                existing = ErrorRecord(path=key, error=message, timestamp=now)
                self._errors[key] = existing
            else:
                existing.attempts += 1
                existing.error = message
                existing.timestamp = now
            snapshot = ErrorRecord(**asdict(existing))
        logger.warning(
            "Recorded failure for %s (attempt %d): %s",
            key,
            snapshot.attempts,
            message,
            extra={"attempts": snapshot.attempts},
        )
        return snapshot

    def clear_errors(self) -> int:
        """Remove every error record. Returns how many were removed."""
        with self._lock:
            count = len(self._errors)
            self._errors = {}
        return count

    def records(self) -> list[TranscodeRecord]:
        with self._lock:
            return list(self._records.values())

    def errors(self) -> list[ErrorRecord]:
        with self._lock:
            return [ErrorRecord(**asdict(e)) for e in self._errors.values()]

    def stats(self, max_attempts: int = MAX_ATTEMPTS) -> StoreStats:
        with self._lock:
            records = list(self._records.values())
            errors = list(self._errors.values())
        return StoreStats(
            completed=sum(1 for r in records if r.success),
            kept_original=sum(1 for r in records if r.success and r.note),
            errors=len(errors),
            permanently_failed=sum(1 for e in errors if e.attempts >= max_attempts),
            bytes_saved=sum(r.bytes_saved for r in records),
        )

    def save_error_log(self, path: Path) -> None:
        """Write all error records as a JSON list for external inspection.

        Raises:
            StoreError: If the log cannot be written.
        """
        errors = [e.to_dict() for e in self.errors()]
        try:
            write_json_atomic(path, errors)
        except OSError as e:
            raise StoreError(f"Cannot write error log {path}: {e}") from e
        if errors:
            logger.info("Saved %d error records to %s", len(errors), path)


def partition(
    files: Iterable[DiscoveredFile],
    store: JobStore,
    max_attempts: int = MAX_ATTEMPTS,
) -> Partition:
    """Split discovered files before any probing happens.

    Args:
        files: Discovered files.
        store: Loaded job store.
        max_attempts: Failure count at which a path is permanently skipped.

    Returns:
        Partition into files to analyze, already done, and permanently
        failed.
    """
    result = Partition()
    for discovered in files:
        if store.is_done(discovered.path):
            result.already_done.append(discovered)
            continue
        error = store.get_error(discovered.path)
        if error is not None and error.attempts >= max_attempts:
            result.permanently_failed.append(discovered)
            continue
        result.to_analyze.append(discovered)
    return result
