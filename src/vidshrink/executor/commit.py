"""Putting a finished encode in place.

In-place replacement follows a fixed protocol so that a crash at any point
leaves either the original or the new file at the original path, plus at
most one recoverable backup:

1. rename original -> original + BACKUP_SUFFIX
2. move temp output -> original path
3. delete the backup

If step 2 fails, the backup is renamed back before the error propagates.
"""

import errno
import logging
import os
import shutil
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".vidshrink-backup"

# Suffix used while a cross-device copy is in flight
PARTIAL_SUFFIX = ".vidshrink-partial"


class MoveErrorType(Enum):
    """Categorization of filesystem errors during commit."""

    DISK_SPACE = "disk_space"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CROSS_DEVICE = "cross_device"
    DESTINATION_EXISTS = "destination_exists"
    IO_ERROR = "io_error"
    UNKNOWN = "unknown"


_ERRNO_TYPES = {
    errno.ENOSPC: MoveErrorType.DISK_SPACE,
    errno.EDQUOT: MoveErrorType.DISK_SPACE,
    errno.EACCES: MoveErrorType.PERMISSION,
    errno.EPERM: MoveErrorType.PERMISSION,
    errno.EROFS: MoveErrorType.PERMISSION,
    errno.ENOENT: MoveErrorType.NOT_FOUND,
    errno.EXDEV: MoveErrorType.CROSS_DEVICE,
    errno.EIO: MoveErrorType.IO_ERROR,
}


def categorize_error(error: OSError) -> MoveErrorType:
    """Map an OSError to a MoveErrorType by errno."""
    return _ERRNO_TYPES.get(error.errno, MoveErrorType.UNKNOWN)


class CommitError(Exception):
    """Raised when a finished encode could not be committed.

    Attributes:
        path: The original media file.
        error_type: Category of the underlying filesystem error.
        restored: For in-place commits, whether the original was put back.
    """

    def __init__(
        self,
        message: str,
        path: Path,
        error_type: MoveErrorType = MoveErrorType.UNKNOWN,
        restored: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.error_type = error_type
        self.restored = restored


def move_file(source: Path, destination: Path) -> None:
    """Move a file, falling back to copy + delete across filesystems.

    The cross-device fallback is chosen only for EXDEV. The copy is written
    next to the destination and renamed into place, so the destination
    never holds a partial file.

    Raises:
        OSError: If the move fails.
    """
    try:
        os.rename(source, destination)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        logger.debug(
            "Cross-device move, copying instead",
            extra={"source_path": str(source), "destination_path": str(destination)},
        )

    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    try:
        shutil.copy2(source, partial)
        os.replace(partial, destination)
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    source.unlink()


def get_backup_path(file_path: Path) -> Path:
    return file_path.with_name(file_path.name + BACKUP_SUFFIX)


def restore_from_backup(backup_path: Path, original_path: Path) -> None:
    """Put a backup back at the original path.

    Anything at the original path (such as a partially moved encode) is
    removed first.

    Raises:
        FileNotFoundError: If the backup does not exist.
        OSError: If the restore fails.
    """
    if not backup_path.exists():
        raise FileNotFoundError(f"Backup file not found: {backup_path}")

    logger.info(
        "Restoring from backup",
        extra={"backup_path": str(backup_path), "target_path": str(original_path)},
    )
    if original_path.exists():
        original_path.unlink()
    os.rename(backup_path, original_path)


def safe_restore_from_backup(backup_path: Path, original_path: Path) -> bool:
    """Restore a backup, logging instead of raising on failure.

    Used in error paths where a restore failure must not mask the error
    that caused it.

    Returns:
        True if the original is back in place.
    """
    try:
        restore_from_backup(backup_path, original_path)
        return True
    except OSError as e:
        logger.error(
            "Failed to restore backup %s: %s. Original file remains at the "
            "backup path and must be restored manually.",
            backup_path,
            e,
        )
        return False


def replace_original(original: Path, temp_output: Path) -> None:
    """Replace original with temp_output using the backup protocol.

    Args:
        original: Media file being replaced.
        temp_output: Verified encoder output.

    Raises:
        CommitError: If any step before the backup is removed fails. When
            the failure comes after the backup rename, a restore is
            attempted first and reported via CommitError.restored.
    """
    backup = get_backup_path(original)
    if backup.exists():
        logger.warning(
            "Removing stale backup before commit",
            extra={"backup_path": str(backup)},
        )
        try:
            backup.unlink()
        except OSError as e:
            raise CommitError(
                f"Cannot remove stale backup {backup}: {e}",
                original,
                categorize_error(e),
            ) from e

    try:
        os.rename(original, backup)
    except OSError as e:
        raise CommitError(
            f"Cannot back up {original}: {e}", original, categorize_error(e)
        ) from e

    try:
        move_file(temp_output, original)
    except OSError as e:
        restored = safe_restore_from_backup(backup, original)
        raise CommitError(
            f"Cannot move encoded file into place for {original}: {e}"
            + ("" if restored else f" (original left at {backup})"),
            original,
            categorize_error(e),
            restored=restored,
        ) from e

    try:
        backup.unlink()
    except OSError as e:
        # The new file is already in place; only cleanup failed
        logger.warning("Could not remove backup %s: %s", backup, e)


def compute_destination(
    original: Path,
    output_dir: Path,
    media_root: Path | None = None,
    preserve_structure: bool = True,
) -> Path:
    """Where a separate-mode output goes.

    With preserve_structure, the path relative to media_root is mirrored
    under output_dir; otherwise only the file name is used. The suffix is
    always .mkv.
    """
    relative = Path(original.name)
    if preserve_structure and media_root is not None:
        try:
            relative = original.relative_to(media_root)
        except ValueError:
            logger.debug("%s is not under %s, using file name", original, media_root)
    return (output_dir / relative).with_suffix(".mkv")


def relocate(temp_output: Path, destination: Path) -> Path:
    """Move a verified encode to its separate-mode destination.

    The destination is claimed with an exclusive create before the move.
    Two sources that map to one output (a.mp4 next to a.mkv, or same-named
    files in a flat layout) therefore fail instead of overwriting each
    other, and so does an output left by something else.

    Raises:
        CommitError: If the destination exists, its directory cannot be
            created, or the move fails.
    """
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CommitError(
            f"Cannot create directory {destination.parent}: {e}",
            destination,
            categorize_error(e),
        ) from e
    try:
        claim = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError as e:
        raise CommitError(
            f"Output {destination} already exists, refusing to overwrite it",
            destination,
            MoveErrorType.DESTINATION_EXISTS,
        ) from e
    except OSError as e:
        raise CommitError(
            f"Cannot create {destination}: {e}", destination, categorize_error(e)
        ) from e
    os.close(claim)

    try:
        move_file(temp_output, destination)
    except OSError as e:
        destination.unlink(missing_ok=True)
        raise CommitError(
            f"Cannot move encoded file to {destination}: {e}",
            destination,
            categorize_error(e),
        ) from e
    return destination


def find_orphaned_backups(roots: Iterable[Path]) -> list[Path]:
    """Find backups left behind by an interrupted in-place commit."""
    found: list[Path] = []
    for root in roots:
        if not root.is_dir():
            continue
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in filenames:
                if name.endswith(BACKUP_SUFFIX):
                    found.append(Path(dirpath) / name)
    return sorted(found)


def recover_backup(backup_path: Path) -> bool:
    """Resolve one orphaned backup.

    If the original path is empty the backup is the only copy and is
    restored. If the original exists, the commit had completed and the
    backup is deleted.

    Returns:
        True if the backup was restored, False if it was deleted.

    Raises:
        OSError: If the filesystem operation fails.
    """
    original = Path(str(backup_path)[: -len(BACKUP_SUFFIX)])
    if original.exists():
        backup_path.unlink()
        logger.info("Removed leftover backup %s", backup_path)
        return False
    os.rename(backup_path, original)
    logger.info("Restored %s from leftover backup", original)
    return True
