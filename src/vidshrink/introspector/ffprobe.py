"""ffprobe-based implementation of the MediaProber protocol."""

import json
import shutil
import subprocess  # nosec B404 - subprocess is required for ffprobe invocation
from pathlib import Path

from vidshrink.introspector.interface import MediaIntrospectionError, ProbeResult
from vidshrink.introspector.parsers import parse_ffprobe_output

# Seconds before a single probe is abandoned
PROBE_TIMEOUT = 60


class FFprobeIntrospector:
    """Probe files with ffprobe.

    Stateless apart from the tool path, so one instance is safely shared by
    all scheduler workers.
    """

    def __init__(self, ffprobe_path: Path | None = None, timeout: int = PROBE_TIMEOUT):
        """Initialize the introspector.

        Args:
            ffprobe_path: Explicit ffprobe path. Looked up on PATH if None.
            timeout: Per-probe timeout in seconds.

        Raises:
            MediaIntrospectionError: If ffprobe cannot be found.
        """
        if ffprobe_path is None:
            found = shutil.which("ffprobe")
            ffprobe_path = Path(found) if found else None
        if ffprobe_path is None:
            raise MediaIntrospectionError(
                "ffprobe is not installed or not in PATH. Install ffmpeg or set "
                "VIDSHRINK_FFPROBE_PATH / [tools] ffprobe in the config file."
            )
        self._ffprobe_path = ffprobe_path
        self._timeout = timeout

    @property
    def ffprobe_path(self) -> Path:
        return self._ffprobe_path

    def probe(self, path: Path) -> ProbeResult:
        """Probe a media file.

        Args:
            path: Path to the file.

        Returns:
            ProbeResult describing the file.

        Raises:
            MediaIntrospectionError: If the file is missing or ffprobe fails,
                times out, or emits unusable output.
        """
        if not path.exists():
            raise MediaIntrospectionError(f"File not found: {path}")

        try:
            data = self._run_ffprobe(path)
        except subprocess.TimeoutExpired as e:
            raise MediaIntrospectionError(
                f"ffprobe timed out for {path} after {e.timeout}s"
            ) from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit code {e.returncode}"
            raise MediaIntrospectionError(f"ffprobe failed for {path}: {detail}") from e
        except json.JSONDecodeError as e:
            raise MediaIntrospectionError(
                f"Invalid ffprobe output for {path}: {e}"
            ) from e
        except OSError as e:
            raise MediaIntrospectionError(
                f"Could not run ffprobe for {path}: {e}"
            ) from e

        return parse_ffprobe_output(path, data)

    def _run_ffprobe(self, path: Path) -> dict:
        result = subprocess.run(  # nosec B603 - ffprobe path is validated
            [
                str(self._ffprobe_path),
                "-v",
                "error",
                "-print_format",
                "json",
                "-show_streams",
                "-show_format",
                str(path),
            ],
            capture_output=True,
            text=True,
            errors="replace",
            check=True,
            timeout=self._timeout,
            start_new_session=True,
        )
        data = json.loads(result.stdout)
        if not isinstance(data, dict) or "streams" not in data:
            raise MediaIntrospectionError(
                f"Missing 'streams' in ffprobe output for {path}. "
                "File may be corrupted or not a valid media file."
            )
        return data
