"""Unit tests for the job store."""

import json
from pathlib import Path

import pytest

from vidshrink.media.discovery import DiscoveredFile
from vidshrink.store.job_store import (
    STORE_VERSION,
    JobStore,
    TranscodeRecord,
    partition,
)
from vidshrink.store.persistence import StoreError


def _record(path: str, original: int = 1000, new: int = 400, **kwargs):
    return TranscodeRecord(
        original_path=path,
        transcoded_at="2024-05-01T12:00:00+00:00",
        original_codec="h264",
        original_width=1920,
        original_height=1080,
        original_size=original,
        new_width=1280,
        new_height=720,
        new_size=new,
        duration=12.5,
        **kwargs,
    )


@pytest.fixture
def store(temp_dir: Path) -> JobStore:
    store = JobStore(temp_dir / "jobs.json")
    store.load()
    return store


# =============================================================================
# Load / save
# =============================================================================


class TestLoadSave:
    def test_missing_file_starts_empty(self, temp_dir: Path) -> None:
        store = JobStore(temp_dir / "missing.json")

        store.load()

        assert store.loaded
        assert store.records() == []
        assert store.last_run is None

    def test_round_trip(self, store: JobStore, temp_dir: Path) -> None:
        store.add_record(_record("/m/a.mkv"))
        store.add_error("/m/b.mkv", "boom")
        store.save()

        reloaded = JobStore(temp_dir / "jobs.json")
        reloaded.load()

        assert reloaded.is_done("/m/a.mkv")
        assert reloaded.get_error("/m/b.mkv").error == "boom"
        assert reloaded.last_run == store.last_run

    def test_saved_document_layout(self, store: JobStore, temp_dir: Path) -> None:
        store.add_record(_record("/m/a.mkv"))
        store.save()

        data = json.loads((temp_dir / "jobs.json").read_text())

        assert data["version"] == STORE_VERSION
        assert data["last_run"]
        assert data["records"]["/m/a.mkv"]["new_size"] == 400
        assert data["errors"] == {}

    def test_invalid_json_raises(self, temp_dir: Path) -> None:
        path = temp_dir / "jobs.json"
        path.write_text("{not json")
        store = JobStore(path)

        with pytest.raises(StoreError, match="Cannot read job store"):
            store.load()
        assert not store.loaded

    def test_unknown_version_raises(self, temp_dir: Path) -> None:
        path = temp_dir / "jobs.json"
        path.write_text(json.dumps({"version": 99, "records": {}}))

        with pytest.raises(StoreError, match="Unsupported job store version"):
            JobStore(path).load()

    def test_corrupt_record_raises(self, temp_dir: Path) -> None:
        path = temp_dir / "jobs.json"
        path.write_text(
            json.dumps({"version": STORE_VERSION, "records": {"/m/a.mkv": {}}})
        )

        with pytest.raises(StoreError, match="corrupt"):
            JobStore(path).load()

    def test_version_1_is_migrated(self, temp_dir: Path) -> None:
        path = temp_dir / "jobs.json"
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "lastRun": "2023-01-01T00:00:00Z",
                    "records": {
                        "/m/a.mkv": {
                            "originalPath": "/m/a.mkv",
                            "transcodedAt": "2023-01-01T00:00:00Z",
                            "originalCodec": "h264",
                            "originalWidth": 1920,
                            "originalHeight": 1080,
                            "originalSize": 1000,
                            "newWidth": 1280,
                            "newHeight": 720,
                            "newSize": 300,
                            "duration": 5,
                            "success": True,
                        }
                    },
                    "errors": {},
                }
            )
        )
        store = JobStore(path)

        store.load()

        record = store.get_record("/m/a.mkv")
        assert record is not None
        assert record.new_size == 300
        assert record.bytes_saved == 700
        assert store.last_run == "2023-01-01T00:00:00Z"


# =============================================================================
# Records and errors
# =============================================================================


class TestRecordsAndErrors:
    def test_add_record_clears_error(self, store: JobStore) -> None:
        store.add_error("/m/a.mkv", "first failure")

        store.add_record(_record("/m/a.mkv"))

        assert store.get_error("/m/a.mkv") is None
        assert store.is_done("/m/a.mkv")

    def test_failed_record_is_not_done(self, store: JobStore) -> None:
        store.add_record(_record("/m/a.mkv", success=False))

        assert not store.is_done("/m/a.mkv")

    def test_repeat_errors_increment_attempts(self, store: JobStore) -> None:
        first = store.add_error("/m/a.mkv", "one")
        second = store.add_error("/m/a.mkv", "two")

        assert first.attempts == 1
        assert second.attempts == 2
        assert store.get_error("/m/a.mkv").error == "two"

    def test_returned_error_is_a_copy(self, store: JobStore) -> None:
        snapshot = store.add_error("/m/a.mkv", "one")
        snapshot.attempts = 50

        assert store.get_error("/m/a.mkv").attempts == 1

    def test_clear_errors(self, store: JobStore) -> None:
        store.add_error("/m/a.mkv", "one")
        store.add_error("/m/b.mkv", "two")

        assert store.clear_errors() == 2
        assert store.errors() == []

    def test_stats(self, store: JobStore) -> None:
        store.add_record(_record("/m/a.mkv", 1000, 400))
        store.add_record(_record("/m/b.mkv", 1000, 1000, note="kept original"))
        for _ in range(3):
            store.add_error("/m/c.mkv", "bad")
        store.add_error("/m/d.mkv", "bad")

        stats = store.stats(max_attempts=3)

        assert stats.completed == 2
        assert stats.kept_original == 1
        assert stats.errors == 2
        assert stats.permanently_failed == 1
        assert stats.bytes_saved == 600

    def test_error_log(self, store: JobStore, temp_dir: Path) -> None:
        store.add_error("/m/a.mkv", "bad")
        log = temp_dir / "logs" / "errors.json"

        store.save_error_log(log)

        entries = json.loads(log.read_text())
        assert entries[0]["path"] == "/m/a.mkv"
        assert entries[0]["attempts"] == 1


# =============================================================================
# partition()
# =============================================================================


class TestPartition:
    def test_splits_by_store_state(self, store: JobStore) -> None:
        files = [
            DiscoveredFile(Path(f"/m/{name}.mkv"), 10, Path("/m"))
            for name in ("done", "failing", "dead", "new")
        ]
        store.add_record(_record("/m/done.mkv"))
        store.add_error("/m/failing.mkv", "x")
        for _ in range(3):
            store.add_error("/m/dead.mkv", "x")

        result = partition(files, store, max_attempts=3)

        assert [f.path.name for f in result.already_done] == ["done.mkv"]
        assert [f.path.name for f in result.permanently_failed] == ["dead.mkv"]
        assert [f.path.name for f in result.to_analyze] == [
            "failing.mkv",
            "new.mkv",
        ]
