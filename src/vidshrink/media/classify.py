"""Media classification, exclusion matching, and target sizing.

All functions here are pure: they look only at path strings and numbers,
never at the filesystem.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath

from vidshrink.config.models import ExclusionRules

logger = logging.getLogger(__name__)

__all__ = [
    "ExclusionMatcher",
    "ExclusionRules",
    "MediaType",
    "classify",
    "is_excluded",
    "target_resolution",
]


class MediaType(Enum):
    """Kind of media a file holds, used to pick the height ceiling."""

    TV = "tv"
    MOVIE = "movie"
    OTHER = "other"


# Episode markers in file names. The NxNN form must not sit inside a longer
# digit run, so "1920x1080" is not mistaken for an episode.
_TV_FILENAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[Ss]\d{1,2}[Ee]\d{1,3}"),
    re.compile(r"(?<!\d)\d{1,2}x\d{1,3}(?!\d)"),
    re.compile(r"\bSeason[ ._-]?\d+", re.IGNORECASE),
    re.compile(r"\bEpisode[ ._-]?\d+", re.IGNORECASE),
)

_TV_DIRECTORY_PATTERN = re.compile(
    r"^(tv|tv[ ._-]?shows?|series|seasons?|episodes?)$", re.IGNORECASE
)
_MOVIE_DIRECTORY_PATTERN = re.compile(r"^(movies?|films?)$", re.IGNORECASE)


def classify(path: str | PurePath) -> MediaType:
    """Classify a file as TV, movie, or other from its path.

    Rules are tried in order and the first match wins:
    1. An episode marker in the file name (S01E02, 1x02, Season 1, Episode 2)
    2. A directory named like a TV library (tv, tv shows, series, season(s),
       episode(s))
    3. A directory named like a movie library (movie(s), film(s))

    Args:
        path: Path to the media file.

    Returns:
        The detected MediaType (OTHER when nothing matches).
    """
    pure = PurePath(path)
    name = pure.name

    for pattern in _TV_FILENAME_PATTERNS:
        if pattern.search(name):
            return MediaType.TV

    directories = pure.parent.parts
    if any(_TV_DIRECTORY_PATTERN.match(part) for part in directories):
        return MediaType.TV
    if any(_MOVIE_DIRECTORY_PATTERN.match(part) for part in directories):
        return MediaType.MOVIE

    return MediaType.OTHER


def _compile_patterns(patterns: tuple[str, ...], kind: str) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.warning(
                "Ignoring invalid %s pattern %r: %s",
                kind,
                pattern,
                e,
                extra={"pattern": pattern},
            )
    return compiled


@dataclass(frozen=True)
class ExclusionMatcher:
    """ExclusionRules compiled once for repeated matching."""

    directories: frozenset[str]
    path_contains: tuple[str, ...]
    path_patterns: tuple[re.Pattern[str], ...]
    file_patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def from_rules(cls, rules: ExclusionRules) -> ExclusionMatcher:
        """Compile rules, skipping (and logging) invalid regexes."""
        return cls(
            directories=frozenset(d.casefold() for d in rules.directories),
            path_contains=tuple(s.casefold() for s in rules.path_contains if s),
            path_patterns=tuple(_compile_patterns(rules.path_patterns, "path")),
            file_patterns=tuple(_compile_patterns(rules.file_patterns, "file")),
        )

    def excludes_directory(self, name: str) -> bool:
        """Check a single directory name against the blocklist."""
        return name.casefold() in self.directories


def is_excluded(
    path: str | PurePath,
    matcher: ExclusionMatcher,
    *,
    check_directories: bool = True,
) -> tuple[bool, str | None]:
    """Decide whether a path is excluded from processing.

    Checks run in a fixed order and the first match is reported:
    directory blocklist, literal path substrings, path regexes, file-name
    regexes.

    Args:
        path: Path to check.
        matcher: Compiled exclusion rules.
        check_directories: Set False when directory pruning already
            happened during the walk.

    Returns:
        Tuple of (excluded, reason). reason is None when not excluded.
    """
    pure = PurePath(path)
    full = str(pure)

    if check_directories:
        for part in pure.parent.parts:
            if matcher.excludes_directory(part):
                return True, f"directory: {part}"

    folded = full.casefold()
    for needle in matcher.path_contains:
        if needle in folded:
            return True, f"path contains: {needle}"

    for pattern in matcher.path_patterns:
        if pattern.search(full):
            return True, f"path pattern: {pattern.pattern}"

    for pattern in matcher.file_patterns:
        if pattern.search(pure.name):
            return True, f"file pattern: {pattern.pattern}"

    return False, None


def target_resolution(
    width: int,
    height: int,
    media_type: MediaType,
    tv_max_height: int,
    movie_max_height: int,
    max_height_override: int | None = None,
) -> tuple[int, int] | None:
    """Compute the downscaled output size, if any.

    The ceiling is tv_max_height for TV and movie_max_height for movies;
    max_height_override replaces it when given. Files classified as OTHER
    are never resized.

    Args:
        width: Source width in pixels.
        height: Source height in pixels.
        media_type: Classification of the file.
        tv_max_height: Ceiling for TV.
        movie_max_height: Ceiling for movies.
        max_height_override: Per-job ceiling replacing the type default.

    Returns:
        (width, height) of the output, or None when no scaling is needed.
        The width keeps the aspect ratio and is rounded down to an even
        number, as required by 4:2:0 encoders.
    """
    if media_type is MediaType.OTHER:
        return None
    if width <= 0 or height <= 0:
        return None

    if max_height_override is not None:
        ceiling = max_height_override
    elif media_type is MediaType.TV:
        ceiling = tv_max_height
    else:
        ceiling = movie_max_height

    if height <= ceiling:
        return None

    scaled_width = (width * ceiling) // height
    scaled_width -= scaled_width % 2
    return max(scaled_width, 2), ceiling
