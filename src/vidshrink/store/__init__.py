"""Persistent state: the job store and the analysis cache."""

from vidshrink.store.analysis_cache import (
    AnalysisCache,
    AnalysisRecord,
    CachedVideoInfo,
)
from vidshrink.store.job_store import (
    MAX_ATTEMPTS,
    ErrorRecord,
    JobStore,
    Partition,
    StoreStats,
    TranscodeRecord,
    partition,
)
from vidshrink.store.persistence import StoreError

__all__ = [
    "MAX_ATTEMPTS",
    "AnalysisCache",
    "AnalysisRecord",
    "CachedVideoInfo",
    "ErrorRecord",
    "JobStore",
    "Partition",
    "StoreError",
    "StoreStats",
    "TranscodeRecord",
    "partition",
]
