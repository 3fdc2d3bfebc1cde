"""Unit tests for job log context, JSON output and logging setup."""

import json
import logging
import sys
import threading
from pathlib import Path

import pytest

from vidshrink.config.models import LoggingConfig
from vidshrink.logging import (
    JSONFormatter,
    JobContextFilter,
    JobLogContext,
    configure_logging,
    current_job,
    job_context,
    set_job_state,
)


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="vidshrink.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def _filtered(message: str = "hello", **extra) -> logging.LogRecord:
    record = _record(message, **extra)
    JobContextFilter().filter(record)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


# =============================================================================
# Job context
# =============================================================================


class TestJobContext:
    def test_nothing_outside_a_job(self) -> None:
        assert current_job() is None

    def test_block_sets_and_restores(self) -> None:
        with job_context("01", "J001", Path("/m/a.mkv"), attempt=2) as outer:
            assert current_job() is outer
            assert outer.path == "/m/a.mkv"
            with job_context("02", "J002"):
                assert current_job().job_id == "J002"
            assert current_job() is outer
        assert current_job() is None

    def test_state_changes_stay_inside_block(self) -> None:
        with job_context("01", "J001"):
            set_job_state("encoding")
            assert current_job().state == "encoding"
            set_job_state("verifying")
            assert current_job().state == "verifying"
        assert current_job() is None

    def test_state_outside_a_job_is_ignored(self) -> None:
        set_job_state("encoding")

        assert current_job() is None

    def test_threads_do_not_share_context(self) -> None:
        seen = {}

        def worker(worker_id: str) -> None:
            with job_context(worker_id, f"J{worker_id}"):
                set_job_state(f"state-{worker_id}")
                seen[worker_id] = current_job()

        threads = [threading.Thread(target=worker, args=(f"0{i}",)) for i in (1, 2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert {k: (v.job_id, v.state) for k, v in seen.items()} == {
            "01": ("J01", "state-01"),
            "02": ("J02", "state-02"),
        }
        assert current_job() is None


class TestJobTag:
    @pytest.mark.parametrize(
        ("context", "expected"),
        [
            (JobLogContext("03"), "[W03]"),
            (JobLogContext("03", "J007"), "[W03 J007]"),
            (JobLogContext("03", "J007", state="encoding"), "[W03 J007 encoding]"),
            (
                JobLogContext("03", "J007", attempt=3, state="verifying"),
                "[W03 J007#3 verifying]",
            ),
        ],
    )
    def test_tag(self, context: JobLogContext, expected: str) -> None:
        assert context.tag == expected

    def test_filter_adds_tag_and_job(self) -> None:
        with job_context("01", "J002", "/m/a.mkv"):
            set_job_state("encoding")
            record = _filtered()

        assert record.job_tag == "[W01 J002 encoding] "
        assert record.job.path == "/m/a.mkv"

    def test_filter_without_job(self) -> None:
        record = _filtered()

        assert record.job_tag == ""
        assert record.job is None


# =============================================================================
# JSON formatter
# =============================================================================


class TestJSONFormatter:
    def test_basic_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_filtered("encoding done")))

        assert entry["level"] == "INFO"
        assert entry["message"] == "encoding done"
        assert entry["logger"] == "vidshrink.test"
        assert entry["timestamp"].endswith("+00:00")
        assert "job" not in entry
        assert "extra" not in entry

    def test_job_and_extra(self) -> None:
        with job_context("01", "J002", "/m/a.mkv", attempt=2):
            set_job_state("verifying")
            record = _filtered(bitrate="2M")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["job"] == {
            "worker": "01",
            "id": "J002",
            "path": "/m/a.mkv",
            "attempt": 2,
            "state": "verifying",
        }
        assert entry["extra"] == {"bitrate": "2M"}

    def test_non_serializable_extra(self) -> None:
        entry = json.loads(JSONFormatter().format(_filtered(path=Path("/m/a.mkv"))))

        assert entry["extra"]["path"] == "/m/a.mkv"

    def test_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


# =============================================================================
# configure_logging
# =============================================================================


class TestConfigureLogging:
    def test_stderr_only_by_default(self, restore_root_logger) -> None:
        configure_logging(LoggingConfig(level="debug"))

        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_json_file(self, restore_root_logger, temp_dir: Path) -> None:
        log_file = temp_dir / "logs" / "vidshrink.log"
        configure_logging(LoggingConfig(file=log_file, format="json"))

        logging.getLogger("vidshrink.test").info("written", extra={"job_number": 1})
        for handler in restore_root_logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "written"
        assert entry["extra"] == {"job_number": 1}
        assert len(restore_root_logger.handlers) == 1

    def test_file_plus_stderr(self, restore_root_logger, temp_dir: Path) -> None:
        configure_logging(
            LoggingConfig(file=temp_dir / "v.log", include_stderr=True)
        )

        assert len(restore_root_logger.handlers) == 2

    def test_unwritable_file_falls_back_to_stderr(
        self, restore_root_logger, temp_dir: Path, capsys
    ) -> None:
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("")

        configure_logging(LoggingConfig(file=blocker / "v.log"))

        assert len(restore_root_logger.handlers) == 1
        assert "Could not open log file" in capsys.readouterr().err

    def test_text_lines_carry_job_tag(
        self, restore_root_logger, temp_dir: Path
    ) -> None:
        log_file = temp_dir / "v.log"
        configure_logging(LoggingConfig(file=log_file))

        with job_context("02", "J014"):
            set_job_state("encoding")
            logging.getLogger("vidshrink.test").info("Starting transcode")
        for handler in restore_root_logger.handlers:
            handler.flush()

        line = log_file.read_text().splitlines()[-1]
        assert "INFO    [W02 J014 encoding] Starting transcode [vidshrink.test]" in line
