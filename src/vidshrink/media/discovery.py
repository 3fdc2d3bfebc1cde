"""Filesystem discovery of candidate video files."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from vidshrink.media.classify import ExclusionMatcher, is_excluded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredFile:
    """A video file found under a media root."""

    path: Path
    size: int
    root: Path


@dataclass
class DiscoveryResult:
    """Everything a walk over the media roots produced."""

    files: list[DiscoveredFile] = field(default_factory=list)

    # (path, reason) for files or directories skipped by exclusion rules
    excluded: list[tuple[Path, str]] = field(default_factory=list)

    # Roots that do not exist or are not directories
    missing_roots: list[Path] = field(default_factory=list)

    # (path, error message) for entries that could not be read
    unreadable: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)


def discover(
    roots: Iterable[Path],
    extensions: Iterable[str],
    matcher: ExclusionMatcher,
) -> DiscoveryResult:
    """Walk media roots and collect video files.

    Excluded directory names are pruned during the walk so their contents
    are never visited. Symlinked directories are not followed.

    Args:
        roots: Media root directories.
        extensions: Allowed file extensions including the dot; compared
            case-insensitively.
        matcher: Compiled exclusion rules.

    Returns:
        DiscoveryResult with found files, exclusions, and problems.
    """
    allowed = frozenset(ext.casefold() for ext in extensions)
    result = DiscoveryResult()
    seen: set[Path] = set()

    for root in roots:
        root = Path(root).expanduser()
        if not root.is_dir():
            logger.warning(
                "Media root does not exist or is not a directory: %s",
                root,
                extra={"root": str(root)},
            )
            result.missing_roots.append(root)
            continue

        def on_error(error: OSError) -> None:
            logger.warning("Cannot read directory %s: %s", error.filename, error)
            result.unreadable.append((Path(error.filename or root), str(error)))

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            current = Path(dirpath)

            kept = []
            for name in sorted(dirnames):
                if matcher.excludes_directory(name):
                    result.excluded.append((current / name, f"directory: {name}"))
                else:
                    kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                path = current / name
                if path.suffix.casefold() not in allowed:
                    continue

                excluded, reason = is_excluded(path, matcher, check_directories=False)
                if excluded:
                    logger.debug("Excluded %s (%s)", path, reason)
                    result.excluded.append((path, reason or "excluded"))
                    continue

                if path in seen:
                    continue

                try:
                    stat = path.stat()
                except OSError as e:
                    logger.warning("Cannot stat %s: %s", path, e)
                    result.unreadable.append((path, str(e)))
                    continue

                seen.add(path)
                result.files.append(
                    DiscoveredFile(path=path, size=stat.st_size, root=root)
                )

    logger.info(
        "Discovered %d video files (%d excluded)",
        len(result.files),
        len(result.excluded),
        extra={
            "file_count": len(result.files),
            "excluded_count": len(result.excluded),
            "total_bytes": result.total_bytes,
        },
    )
    return result
