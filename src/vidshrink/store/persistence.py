"""Atomic JSON document persistence.

Both the job store and the analysis cache are single JSON documents that
are rewritten wholesale. Writes go to a temp file in the same directory
and are renamed over the target, so readers only ever see a complete
document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a persisted document cannot be read or written."""

    pass


def write_json_atomic(path: Path, data: Any) -> None:
    """Write data as JSON to path atomically.

    Args:
        path: Destination file. Parent directories are created.
        data: JSON-serializable document.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2)

    fd, temp_path_str = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=path.parent,
        text=True,
    )
    temp_path = Path(temp_path_str)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)  # Atomic on POSIX
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    """Read a JSON document.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the content is not valid JSON.
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)
