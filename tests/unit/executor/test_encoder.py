"""Unit tests for the encoder process runner."""

import subprocess
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vidshrink.executor.encoder import EncodeError, EncodeResult, run_encoder


def _process(returncode: int = 0, stderr_lines=(), wait_side_effect=None):
    process = MagicMock()
    process.pid = 1234
    process.returncode = returncode
    process.stderr = MagicMock()
    process.stderr.__iter__.return_value = iter([f"{line}\n" for line in stderr_lines])
    if wait_side_effect is not None:
        process.wait.side_effect = wait_side_effect
    return process


class TestEncodeResult:
    def test_success(self) -> None:
        assert EncodeResult(returncode=0).success
        assert not EncodeResult(returncode=0, cancelled=True).success
        assert not EncodeResult(returncode=1).success

    def test_error_summary_uses_last_nonblank_line(self) -> None:
        result = EncodeResult(returncode=1, stderr_tail=["first", "last", "  "])

        assert result.error_summary() == "ffmpeg exited with code 1: last"

    def test_error_summary_without_stderr(self) -> None:
        assert EncodeResult(returncode=137).error_summary() == (
            "ffmpeg exited with code 137"
        )


class TestRunEncoder:
    def test_success_collects_stderr_tail(self) -> None:
        process = _process(0, ["frame=1", "frame=2"])

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ) as popen:
            result = run_encoder(Path("/usr/bin/ffmpeg"), ["-i", "in.mkv", "out.mkv"])

        assert result.success
        assert result.stderr_tail == ["frame=1", "frame=2"]
        cmd = popen.call_args.args[0]
        assert cmd == ["/usr/bin/ffmpeg", "-i", "in.mkv", "out.mkv"]

    def test_missing_stderr_pipe_gives_empty_tail(self) -> None:
        process = _process(1)
        process.stderr = None

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ):
            result = run_encoder(Path("/usr/bin/ffmpeg"), ["-i", "in.mkv", "out.mkv"])

        assert not result.success
        assert result.stderr_tail == []

    def test_start_failure_raises(self) -> None:
        with patch(
            "vidshrink.executor.encoder.subprocess.Popen",
            side_effect=FileNotFoundError("no ffmpeg"),
        ):
            with pytest.raises(EncodeError, match="Could not start"):
                run_encoder(Path("/nope/ffmpeg"), [])

    def test_stop_event_terminates(self) -> None:
        stop = threading.Event()
        stop.set()
        process = _process(
            -15,
            wait_side_effect=[subprocess.TimeoutExpired("ffmpeg", 0.5), None],
        )

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ):
            result = run_encoder(Path("ffmpeg"), [], stop_event=stop)

        assert result.cancelled
        assert not result.success
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    def test_kill_after_grace_period(self) -> None:
        stop = threading.Event()
        stop.set()
        process = _process(
            -9,
            wait_side_effect=[
                subprocess.TimeoutExpired("ffmpeg", 0.5),
                subprocess.TimeoutExpired("ffmpeg", 1),
                None,
            ],
        )

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ):
            result = run_encoder(Path("ffmpeg"), [], stop_event=stop, grace_seconds=1)

        assert result.cancelled
        process.kill.assert_called_once()

    def test_real_process_exit_code(self) -> None:
        result = run_encoder(Path("/bin/sh"), ["-c", "echo oops >&2; exit 3"])

        assert result.returncode == 3
        assert result.stderr_tail == ["oops"]
        assert not result.cancelled

    def test_runs_in_own_session(self) -> None:
        process = _process(0)

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ) as popen:
            run_encoder(Path("ffmpeg"), [])

        assert popen.call_args.kwargs["start_new_session"] is True


class TestEncoderExitDuringShutdown:
    """A child can die from the shutdown signal before stop_event is set."""

    def test_signalled_exit_followed_by_stop_is_cancelled(self) -> None:
        stop = threading.Event()
        timer = threading.Timer(0.1, stop.set)
        timer.start()
        try:
            result = run_encoder(
                Path("/bin/sh"), ["-c", "kill -INT $$"], stop_event=stop
            )
        finally:
            timer.cancel()

        assert result.returncode != 0
        assert result.cancelled
        assert not result.success

    def test_exit_255_then_stop_is_cancelled(self) -> None:
        stop = threading.Event()
        process = _process(255, ["Exiting normally, received signal 2."])
        timer = threading.Timer(0.05, stop.set)

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=process
        ):
            timer.start()
            result = run_encoder(Path("ffmpeg"), [], stop_event=stop)

        assert result.cancelled
        process.terminate.assert_not_called()

    def test_failure_without_stop_is_not_cancelled(self, monkeypatch) -> None:
        monkeypatch.setattr("vidshrink.executor.encoder.STOP_SETTLE_SECONDS", 0.01)
        stop = threading.Event()

        with patch(
            "vidshrink.executor.encoder.subprocess.Popen", return_value=_process(1)
        ):
            result = run_encoder(Path("ffmpeg"), [], stop_event=stop)

        assert not result.cancelled
        assert result.returncode == 1
