"""Shared test fixtures for vidshrink."""

import shutil
import tempfile
from pathlib import Path

import pytest

from vidshrink.config.models import (
    JobsConfig,
    OutputConfig,
    PathsConfig,
    VidshrinkConfig,
)
from vidshrink.executor.encoder import EncodeResult
from vidshrink.introspector.interface import (
    MediaIntrospectionError,
    ProbeResult,
    VideoStreamInfo,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test isolation."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def media_root(temp_dir: Path) -> Path:
    root = temp_dir / "media"
    root.mkdir()
    return root


@pytest.fixture
def make_config(temp_dir: Path):
    """Factory for configs whose state files all live under temp_dir."""

    def _make(
        media_roots: list[Path] | None = None,
        *,
        max_concurrency: int = 1,
        checkpoint_interval: int = 5,
        max_attempts: int = 3,
        output: OutputConfig | None = None,
    ) -> VidshrinkConfig:
        state = temp_dir / "state"
        return VidshrinkConfig(
            paths=PathsConfig(
                media_roots=list(media_roots or []),
                temp_dir=temp_dir / "tmp",
                job_store=state / "jobs.json",
                analysis_cache=state / "analysis-cache.json",
                error_log=state / "errors.json",
                lock_file=state / "vidshrink.lock",
            ),
            output=output or OutputConfig(),
            jobs=JobsConfig(
                max_concurrency=max_concurrency,
                checkpoint_interval=checkpoint_interval,
                max_attempts=max_attempts,
                terminate_grace_seconds=0.1,
            ),
        )

    return _make


def write_video(path: Path, size: int = 1000) -> Path:
    """Create a fake media file of the given size."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


class FakeProber:
    """MediaProber returning canned results keyed by file name.

    Names missing from ``streams`` raise MediaIntrospectionError; a value
    of None means "no video stream".
    """

    def __init__(self, streams: dict[str, tuple[str, int, int] | None]) -> None:
        self.streams = streams
        self.calls: list[Path] = []

    def probe(self, path: Path) -> ProbeResult:
        self.calls.append(path)
        if path.name not in self.streams:
            raise MediaIntrospectionError(f"Invalid data found when processing {path}")
        stream = self.streams[path.name]
        video = None
        if stream is not None:
            codec, width, height = stream
            video = VideoStreamInfo(codec=codec, width=width, height=height)
        return ProbeResult(path=path, video=video, has_audio=True, duration=60.0)


class FakeEncoder:
    """Encoder runner that writes the output file instead of running ffmpeg.

    ``sizes`` maps source file names to the output size to produce; names
    in ``fail`` exit with code 1.
    """

    def __init__(
        self,
        sizes: dict[str, int] | None = None,
        default_size: int = 100,
        fail: set[str] | None = None,
    ) -> None:
        self.sizes = sizes or {}
        self.default_size = default_size
        self.fail = fail or set()
        self.calls: list[list[str]] = []

    def __call__(
        self, ffmpeg_path, args, *, cwd=None, stop_event=None, grace_seconds=0
    ):
        self.calls.append(list(args))
        source = Path(args[args.index("-i") + 1])
        output = Path(args[-1])
        if source.name in self.fail:
            return EncodeResult(returncode=1, stderr_tail=["Conversion failed!"])
        output.write_bytes(b"\1" * self.sizes.get(source.name, self.default_size))
        return EncodeResult(returncode=0)


@pytest.fixture
def fake_prober_cls():
    return FakeProber


@pytest.fixture
def fake_encoder_cls():
    return FakeEncoder


@pytest.fixture(name="write_video")
def write_video_fixture():
    return write_video
