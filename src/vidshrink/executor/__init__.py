"""Execution layer: running the encoder and committing its output.

- encoder: ffmpeg process runner with shutdown handling
- commit: backup/replace protocol and separate-mode relocation
- transcode: the per-job encode, verify, commit pipeline
"""

from vidshrink.executor.commit import (
    BACKUP_SUFFIX,
    CommitError,
    MoveErrorType,
    compute_destination,
    find_orphaned_backups,
    get_backup_path,
    move_file,
    recover_backup,
    relocate,
    replace_original,
    restore_from_backup,
    safe_restore_from_backup,
)
from vidshrink.executor.encoder import EncodeError, EncodeResult, run_encoder
from vidshrink.executor.transcode import (
    KEPT_ORIGINAL_NOTE,
    TEMP_SUFFIX,
    JobOutcome,
    JobState,
    TranscodeExecutor,
    temp_path_for,
)

__all__ = [
    # Commit
    "BACKUP_SUFFIX",
    "CommitError",
    "MoveErrorType",
    "compute_destination",
    "find_orphaned_backups",
    "get_backup_path",
    "move_file",
    "recover_backup",
    "relocate",
    "replace_original",
    "restore_from_backup",
    "safe_restore_from_backup",
    # Encoder
    "EncodeError",
    "EncodeResult",
    "run_encoder",
    # Jobs
    "KEPT_ORIGINAL_NOTE",
    "TEMP_SUFFIX",
    "JobOutcome",
    "JobState",
    "TranscodeExecutor",
    "temp_path_for",
]
