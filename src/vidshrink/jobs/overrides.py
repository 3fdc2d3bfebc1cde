"""Per-item overrides from a transcode list.

A transcode list is a YAML file that narrows a run to selected media and
gives each selection its own settings::

    profiles:
      kids:
        library: tv
        max_height: 480
        bitrate: 1M
        priority: 10
      archive:
        in_place: false
        output_dir: /mnt/archive

    media:
      kids:
        - query: "Bluey"
        - query: "Peppa*"
          seasons: [1, 2]
      archive:
        - query: "Lawrence of Arabia"
          max_height: 1080

Each query inherits its profile's values and may override them. Items are
matched highest priority first and the first match decides a file's
settings.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vidshrink.config.models import BITRATE_PATTERN, ConfigError, VidshrinkConfig
from vidshrink.media.classify import MediaType

logger = logging.getLogger(__name__)

# Exclusion reason for files a configured list does not select
NOT_IN_LIST_REASON = "not in transcode list"

LibraryType = Literal["tv", "movie", "both"]

_GLOB_CHARS = frozenset("*?[")

_SEASON_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[Ss](\d{1,2})[Ee]\d{1,3}"),
    re.compile(r"(?<!\d)(\d{1,2})x\d{1,3}(?!\d)"),
    re.compile(r"\bSeason[ ._-]?(\d+)", re.IGNORECASE),
)

_NAME_NOISE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[(\[]?\b(19|20)\d{2}\b[)\]]?"),
    re.compile(
        r"\b(480p|576p|720p|1080p|2160p|4k|uhd|hdr10|hdr|dolby\s*vision)\b", re.I
    ),
    re.compile(r"\b(x264|x265|h\.?264|h\.?265|hevc|avc|xvid|divx)\b", re.I),
    re.compile(
        r"\b(bluray|blu-ray|bdrip|brrip|web-?dl|webrip|hdtv|dvdrip|dvd)\b", re.I
    ),
    re.compile(r"\b(dts-?hd|dts|truehd|atmos|aac|ac3|flac|mp3)\b", re.I),
)


# =============================================================================
# List document models
# =============================================================================


def _check_bitrate(value: str | None) -> str | None:
    if value is not None and not BITRATE_PATTERN.match(value):
        raise ValueError(f"bitrate must look like '5M' or '800K', got {value!r}")
    return value


class ProfileModel(BaseModel):
    """Named group of settings shared by list items."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    library: LibraryType | None = None
    max_height: int | None = Field(default=None, ge=240, le=4320)
    bitrate: str | None = None
    in_place: bool | None = None
    output_dir: Path | None = None
    priority: int | None = None

    @field_validator("bitrate")
    @classmethod
    def validate_bitrate(cls, v: str | None) -> str | None:
        """Validate bitrate format."""
        return _check_bitrate(v)


class MediaQueryModel(BaseModel):
    """One list item: what to match plus per-item overrides."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    query: str = Field(min_length=1)
    seasons: list[int] | None = None
    library: LibraryType | None = None
    max_height: int | None = Field(default=None, ge=240, le=4320)
    bitrate: str | None = None
    in_place: bool | None = None
    output_dir: Path | None = None
    priority: int | None = None

    @field_validator("bitrate")
    @classmethod
    def validate_bitrate(cls, v: str | None) -> str | None:
        """Validate bitrate format."""
        return _check_bitrate(v)

    @field_validator("seasons")
    @classmethod
    def validate_seasons(cls, v: list[int] | None) -> list[int] | None:
        """Season numbers must be positive."""
        if v is not None and any(season < 1 for season in v):
            raise ValueError("season numbers must be positive")
        return v


class TranscodeListModel(BaseModel):
    """Top-level transcode list document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    profiles: dict[str, ProfileModel] = Field(default_factory=dict)
    media: dict[str, list[MediaQueryModel]] = Field(default_factory=dict)


# =============================================================================
# Resolved items
# =============================================================================


@dataclass(frozen=True)
class JobOverrides:
    """Settings a matched list item imposes on one job.

    None means "use the configured default".
    """

    profile_name: str
    query: str = ""
    library: LibraryType = "both"
    max_height: int | None = None
    bitrate: str | None = None
    in_place: bool | None = None
    output_dir: Path | None = None
    priority: int = 0
    seasons: tuple[int, ...] | None = None


@dataclass(frozen=True)
class JobSettings:
    """Effective per-job settings after layering overrides on config."""

    max_height_override: int | None
    bitrate_override: str | None
    in_place: bool
    output_dir: Path | None
    preserve_structure: bool


def clean_media_name(name: str) -> str:
    """Reduce a release-style name to its title words.

    Strips years, quality/codec/source/audio tags and a trailing release
    group that follows them, then turns dots and underscores into spaces.

    >>> clean_media_name("The.Matrix.1999.1080p.BluRay.x265-GROUP")
    'The Matrix'
    """
    # Underscores are word characters; they would hide tags from \b
    cleaned = name.replace("_", " ")
    for pattern in _NAME_NOISE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"(?<=[ .])-[A-Za-z0-9]+$", "", cleaned.strip())
    cleaned = cleaned.replace(".", " ")
    return re.sub(r"\s+", " ", cleaned).strip(" -")


def season_of(path: PurePath) -> int | None:
    """Season number from the file name or its parent directory."""
    for candidate in (path.name, path.parent.name):
        for pattern in _SEASON_PATTERNS:
            match = pattern.search(candidate)
            if match:
                return int(match.group(1))
    return None


def _library_allows(library: LibraryType, media_type: MediaType) -> bool:
    if library == "both":
        return True
    return media_type.value == library


def _query_matches(query: str, path: PurePath) -> bool:
    """Whether a query selects path.

    Globs are matched case-insensitively against each directory name and
    the file stem. Plain queries are compared against cleaned names: equal,
    or contained as whole words.
    """
    names = [*path.parent.parts, path.stem]
    query_folded = query.casefold()

    if _GLOB_CHARS & set(query):
        return any(fnmatch.fnmatchcase(n.casefold(), query_folded) for n in names)

    wanted = clean_media_name(query).casefold()
    if not wanted:
        return False
    word = re.compile(rf"(?<!\w){re.escape(wanted)}(?!\w)")
    for name in names:
        cleaned = clean_media_name(name).casefold()
        if cleaned == wanted or word.search(cleaned):
            return True
    return False


class TranscodeList:
    """Flattened, priority-ordered transcode list."""

    def __init__(self, items: list[JobOverrides]) -> None:
        self.items = sorted(items, key=lambda item: item.priority, reverse=True)

    def __len__(self) -> int:
        return len(self.items)

    @classmethod
    def from_model(cls, model: TranscodeListModel) -> TranscodeList:
        """Flatten profiles and queries, query values winning over profile.

        Raises:
            ConfigError: If media references a profile that is not defined.
        """
        unknown = sorted(set(model.media) - set(model.profiles))
        if unknown:
            raise ConfigError(
                f"Unknown profile reference(s) in media: {', '.join(unknown)}. "
                f"Available profiles: {', '.join(sorted(model.profiles)) or 'none'}"
            )

        items: list[JobOverrides] = []
        for profile_name, queries in model.media.items():
            profile = model.profiles[profile_name]
            for query in queries:
                items.append(_merge(profile_name, profile, query))
        return cls(items)

    def match(self, path: PurePath, media_type: MediaType) -> JobOverrides | None:
        """First (highest priority) item selecting path, or None."""
        for item in self.items:
            if not _library_allows(item.library, media_type):
                continue
            if item.seasons is not None and season_of(path) not in item.seasons:
                continue
            if _query_matches(item.query, path):
                return item
        return None


def _merge(
    profile_name: str, profile: ProfileModel, query: MediaQueryModel
) -> JobOverrides:
    def pick(name: str):
        value = getattr(query, name)
        return value if value is not None else getattr(profile, name)

    return JobOverrides(
        profile_name=profile_name,
        query=query.query,
        library=pick("library") or "both",
        max_height=pick("max_height"),
        bitrate=pick("bitrate"),
        in_place=pick("in_place"),
        output_dir=pick("output_dir"),
        priority=pick("priority") or 0,
        seasons=tuple(query.seasons) if query.seasons is not None else None,
    )


def load_transcode_list(path: Path) -> TranscodeList:
    """Load and validate a transcode list file.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, fails
            validation, or references unknown profiles.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read transcode list {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in transcode list {path}: {e}") from e

    try:
        model = TranscodeListModel.model_validate(data)
    except ValidationError as e:
        messages = []
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            messages.append(f"  {location}: {err['msg']}")
        raise ConfigError(
            f"Invalid transcode list {path}:\n" + "\n".join(messages)
        ) from e

    transcode_list = TranscodeList.from_model(model)
    logger.info(
        "Loaded transcode list: %d profiles, %d items",
        len(model.profiles),
        len(transcode_list),
        extra={"list_path": str(path)},
    )
    return transcode_list


def resolve_job_settings(
    config: VidshrinkConfig, overrides: JobOverrides | None = None
) -> JobSettings:
    """Layer a list item's overrides on the configured output defaults.

    An item with an output_dir but no in_place flag implies separate mode.
    An item asking for separate mode with no directory anywhere falls back
    to in-place with a warning.
    """
    output = config.output
    in_place = output.in_place
    output_dir = output.directory
    max_height = None
    bitrate = None

    if overrides is not None:
        max_height = overrides.max_height
        bitrate = overrides.bitrate
        if overrides.output_dir is not None:
            output_dir = overrides.output_dir
            in_place = False
        if overrides.in_place is not None:
            in_place = overrides.in_place

    if not in_place and output_dir is None:
        logger.warning(
            "Separate output requested without an output directory, "
            "writing in place",
            extra={"profile": overrides.profile_name if overrides else None},
        )
        in_place = True

    return JobSettings(
        max_height_override=max_height,
        bitrate_override=bitrate,
        in_place=in_place,
        output_dir=None if in_place else output_dir,
        preserve_structure=output.preserve_structure,
    )
