"""Unit tests for media classification, exclusions, and target sizing."""

from pathlib import PurePath

import pytest

from vidshrink.config.models import ExclusionRules
from vidshrink.media.classify import (
    ExclusionMatcher,
    MediaType,
    classify,
    is_excluded,
    target_resolution,
)

# =============================================================================
# classify() Tests
# =============================================================================


class TestClassify:
    @pytest.mark.parametrize(
        "path",
        [
            "/media/Show/Show.S01E02.mkv",
            "/media/Show/show.1x02.mkv",
            "/media/Show/Show Season 2 Episode 3.mkv",
            "/media/TV Shows/Some Show/episode-title.mkv",
            "/media/series/thing.mkv",
        ],
    )
    def test_tv(self, path: str) -> None:
        assert classify(path) is MediaType.TV

    @pytest.mark.parametrize(
        "path",
        ["/media/Movies/Heat (1995)/Heat.mkv", "/data/films/Alien.mp4"],
    )
    def test_movie(self, path: str) -> None:
        assert classify(path) is MediaType.MOVIE

    def test_other(self) -> None:
        assert classify("/home/user/videos/birthday.mp4") is MediaType.OTHER

    def test_resolution_in_name_is_not_an_episode(self) -> None:
        assert classify("/media/Movies/Clip.1920x1080.mkv") is MediaType.MOVIE

    def test_episode_marker_wins_over_movie_directory(self) -> None:
        assert classify("/media/movies/Show.S02E01.mkv") is MediaType.TV


# =============================================================================
# is_excluded() Tests
# =============================================================================


class TestIsExcluded:
    @pytest.fixture
    def matcher(self) -> ExclusionMatcher:
        return ExclusionMatcher.from_rules(
            ExclusionRules(
                path_contains=("/Kids/",),
                path_patterns=(r"/tmp\d+/",),
            )
        )

    def test_default_directory_blocklist(self, matcher: ExclusionMatcher) -> None:
        excluded, reason = is_excluded("/media/Movies/Heat/Extras/bts.mkv", matcher)
        assert excluded
        assert reason == "directory: Extras"

    def test_directory_check_can_be_skipped(self, matcher: ExclusionMatcher) -> None:
        excluded, _ = is_excluded(
            "/media/Movies/Heat/Extras/bts.mkv", matcher, check_directories=False
        )
        assert not excluded

    def test_path_contains_is_case_insensitive(
        self, matcher: ExclusionMatcher
    ) -> None:
        excluded, reason = is_excluded("/media/kids/cartoon.mkv", matcher)
        assert excluded
        assert reason == "path contains: /kids/"

    def test_path_pattern(self, matcher: ExclusionMatcher) -> None:
        excluded, reason = is_excluded("/media/tmp42/x.mkv", matcher)
        assert excluded
        assert reason.startswith("path pattern:")

    def test_default_file_patterns(self, matcher: ExclusionMatcher) -> None:
        assert is_excluded("/media/Movies/Heat-sample.mkv", matcher)[0]
        assert is_excluded("/media/Movies/Heat Trailer.mkv", matcher)[0]

    def test_not_excluded(self, matcher: ExclusionMatcher) -> None:
        assert is_excluded("/media/Movies/Heat.mkv", matcher) == (False, None)

    def test_invalid_regex_is_skipped(self) -> None:
        matcher = ExclusionMatcher.from_rules(
            ExclusionRules(path_patterns=("([unclosed",), file_patterns=())
        )
        assert matcher.path_patterns == ()
        assert not is_excluded(PurePath("/media/a.mkv"), matcher)[0]


# =============================================================================
# target_resolution() Tests
# =============================================================================


class TestTargetResolution:
    def test_tv_above_ceiling_is_scaled(self) -> None:
        assert target_resolution(1920, 1080, MediaType.TV, 720, 1080) == (1280, 720)

    def test_movie_at_ceiling_is_kept(self) -> None:
        assert target_resolution(1920, 1080, MediaType.MOVIE, 720, 1080) is None

    def test_movie_4k_is_scaled(self) -> None:
        assert target_resolution(3840, 2160, MediaType.MOVIE, 720, 1080) == (
            1920,
            1080,
        )

    def test_other_is_never_scaled(self) -> None:
        assert target_resolution(3840, 2160, MediaType.OTHER, 720, 1080) is None

    def test_width_rounded_down_to_even(self) -> None:
        # 1502 * 720 / 1080 = 1001.33
        assert target_resolution(1502, 1080, MediaType.TV, 720, 1080) == (1000, 720)
        assert target_resolution(2001, 1081, MediaType.TV, 720, 1080)[0] % 2 == 0

    def test_override_replaces_ceiling(self) -> None:
        assert target_resolution(1280, 720, MediaType.TV, 720, 1080, 480) == (
            852,
            480,
        )

    def test_override_above_source_means_no_scaling(self) -> None:
        assert target_resolution(1920, 1080, MediaType.TV, 720, 1080, 2160) is None

    def test_invalid_dimensions(self) -> None:
        assert target_resolution(0, 0, MediaType.TV, 720, 1080) is None
