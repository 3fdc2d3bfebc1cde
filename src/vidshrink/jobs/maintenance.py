"""Cleanup of files left behind by interrupted runs.

An interrupted encode can leave a temp output in the temp directory, and
a crash in the middle of an in-place commit can leave a backup next to the
original. Both are only safe to touch while holding the run lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from vidshrink.executor.commit import find_orphaned_backups, recover_backup
from vidshrink.executor.transcode import TEMP_SUFFIX

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """What a sweep found and did."""

    temp_files: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)

    # Backups renamed back to their original path
    restored: list[Path] = field(default_factory=list)

    # (path, error) for entries that could not be cleaned up
    errors: list[tuple[Path, str]] = field(default_factory=list)


def find_orphaned_temp_files(temp_dir: Path) -> list[Path]:
    """Temp encoder outputs in temp_dir (not recursive)."""
    if not temp_dir.is_dir():
        return []
    return sorted(
        p for p in temp_dir.iterdir() if p.is_file() and p.name.endswith(TEMP_SUFFIX)
    )


def sweep(
    temp_dir: Path,
    media_roots: Iterable[Path] = (),
    *,
    dry_run: bool = False,
) -> SweepResult:
    """Remove orphaned temp outputs and resolve leftover backups.

    Args:
        temp_dir: Directory holding temp encoder outputs.
        media_roots: Roots searched for leftover commit backups.
        dry_run: Report only, change nothing.

    Returns:
        SweepResult listing what was found, restored, or failed.
    """
    result = SweepResult(
        temp_files=find_orphaned_temp_files(temp_dir),
        backups=find_orphaned_backups(media_roots),
    )
    if dry_run:
        return result

    for temp_file in result.temp_files:
        try:
            temp_file.unlink()
            logger.info("Removed orphaned temp file %s", temp_file)
        except OSError as e:
            result.errors.append((temp_file, str(e)))

    for backup in result.backups:
        try:
            if recover_backup(backup):
                result.restored.append(backup)
        except OSError as e:
            logger.error("Could not resolve backup %s: %s", backup, e)
            result.errors.append((backup, str(e)))
    return result
