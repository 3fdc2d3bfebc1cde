"""Media file discovery and classification."""

from vidshrink.media.classify import (
    ExclusionMatcher,
    ExclusionRules,
    MediaType,
    classify,
    is_excluded,
    target_resolution,
)
from vidshrink.media.discovery import DiscoveredFile, DiscoveryResult, discover

__all__ = [
    "DiscoveredFile",
    "DiscoveryResult",
    "ExclusionMatcher",
    "ExclusionRules",
    "MediaType",
    "classify",
    "discover",
    "is_excluded",
    "target_resolution",
]
