"""Unit tests for transcode lists and per-job settings."""

from pathlib import Path, PurePath

import pytest

from vidshrink.config.models import ConfigError, OutputConfig
from vidshrink.jobs.overrides import (
    JobOverrides,
    TranscodeList,
    clean_media_name,
    load_transcode_list,
    resolve_job_settings,
    season_of,
)
from vidshrink.media.classify import MediaType

LIST_YAML = """\
profiles:
  kids:
    library: tv
    max_height: 480
    bitrate: 1M
    priority: 10
  archive:
    output_dir: /mnt/archive

media:
  kids:
    - query: "Bluey"
    - query: "Peppa*"
      seasons: [1, 2]
  archive:
    - query: "Lawrence of Arabia"
      max_height: 1080
      priority: 20
"""


@pytest.fixture
def list_file(temp_dir: Path) -> Path:
    path = temp_dir / "list.yaml"
    path.write_text(LIST_YAML)
    return path


class TestCleanMediaName:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("The.Matrix.1999.1080p.BluRay.x265-GROUP", "The Matrix"),
            ("Heat (1995)", "Heat"),
            ("Bluey_2018_WEB-DL_AAC", "Bluey"),
            ("plain title", "plain title"),
            ("Spider-Man.2002.720p", "Spider-Man"),
        ],
    )
    def test_clean(self, name: str, expected: str) -> None:
        assert clean_media_name(name) == expected


class TestSeasonOf:
    @pytest.mark.parametrize(
        ("path", "season"),
        [
            ("/tv/Show/Show.S02E05.mkv", 2),
            ("/tv/Show/show.3x01.mkv", 3),
            ("/tv/Show/Season 4/episode.mkv", 4),
            ("/movies/Heat.mkv", None),
        ],
    )
    def test_season(self, path: str, season: int | None) -> None:
        assert season_of(PurePath(path)) == season


class TestLoadTranscodeList:
    def test_flattened_in_priority_order(self, list_file: Path) -> None:
        transcode_list = load_transcode_list(list_file)

        assert len(transcode_list) == 3
        assert [item.query for item in transcode_list.items] == [
            "Lawrence of Arabia",
            "Bluey",
            "Peppa*",
        ]

    def test_query_values_win_over_profile(self, list_file: Path) -> None:
        items = {i.query: i for i in load_transcode_list(list_file).items}

        lawrence = items["Lawrence of Arabia"]
        assert lawrence.max_height == 1080
        assert lawrence.output_dir == Path("/mnt/archive")
        assert lawrence.priority == 20
        assert lawrence.library == "both"

        bluey = items["Bluey"]
        assert bluey.profile_name == "kids"
        assert bluey.library == "tv"
        assert bluey.max_height == 480
        assert bluey.bitrate == "1M"
        assert bluey.seasons is None

        assert items["Peppa*"].seasons == (1, 2)

    def test_unknown_profile(self, temp_dir: Path) -> None:
        path = temp_dir / "list.yaml"
        path.write_text("profiles: {}\nmedia:\n  nope:\n    - query: x\n")

        with pytest.raises(ConfigError, match="Unknown profile reference"):
            load_transcode_list(path)

    def test_validation_error_lists_location(self, temp_dir: Path) -> None:
        path = temp_dir / "list.yaml"
        path.write_text(
            "profiles:\n  a:\n    max_height: 100\n    bitrate: fast\nmedia: {}\n"
        )

        with pytest.raises(ConfigError) as exc_info:
            load_transcode_list(path)

        message = str(exc_info.value)
        assert "profiles.a.max_height" in message
        assert "profiles.a.bitrate" in message

    def test_unknown_key_rejected(self, temp_dir: Path) -> None:
        path = temp_dir / "list.yaml"
        path.write_text("profiles:\n  a:\n    episodes: [1]\n")

        with pytest.raises(ConfigError, match="episodes"):
            load_transcode_list(path)

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "list.yaml"
        path.write_text("profiles: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_transcode_list(path)

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_transcode_list(temp_dir / "missing.yaml")

    def test_empty_file_is_empty_list(self, temp_dir: Path) -> None:
        path = temp_dir / "list.yaml"
        path.write_text("")

        assert len(load_transcode_list(path)) == 0


class TestMatch:
    @pytest.fixture
    def transcode_list(self, list_file: Path) -> TranscodeList:
        return load_transcode_list(list_file)

    def test_plain_query_matches_directory(
        self, transcode_list: TranscodeList
    ) -> None:
        item = transcode_list.match(
            PurePath("/tv/Bluey (2018)/Season 1/Bluey.S01E01.mkv"), MediaType.TV
        )

        assert item is not None
        assert item.query == "Bluey"

    def test_library_restriction(self, transcode_list: TranscodeList) -> None:
        assert (
            transcode_list.match(PurePath("/movies/Bluey/Bluey.mkv"), MediaType.MOVIE)
            is None
        )

    def test_glob_with_seasons(self, transcode_list: TranscodeList) -> None:
        assert transcode_list.match(
            PurePath("/tv/Peppa Pig/Peppa.Pig.S02E03.mkv"), MediaType.TV
        )
        assert (
            transcode_list.match(
                PurePath("/tv/Peppa Pig/Peppa.Pig.S05E03.mkv"), MediaType.TV
            )
            is None
        )

    def test_whole_words_only(self, transcode_list: TranscodeList) -> None:
        assert (
            transcode_list.match(PurePath("/tv/Blueys/Blueys.S01E01.mkv"), MediaType.TV)
            is None
        )

    def test_release_name_matches(self, transcode_list: TranscodeList) -> None:
        item = transcode_list.match(
            PurePath("/movies/Lawrence.of.Arabia.1962.2160p.BluRay.x265-GRP.mkv"),
            MediaType.MOVIE,
        )

        assert item is not None
        assert item.profile_name == "archive"

    def test_highest_priority_wins(self) -> None:
        transcode_list = TranscodeList(
            [
                JobOverrides(profile_name="low", query="Show", priority=1),
                JobOverrides(profile_name="high", query="Show", priority=5),
            ]
        )

        item = transcode_list.match(PurePath("/tv/Show/Show.S01E01.mkv"), MediaType.TV)

        assert item.profile_name == "high"


class TestResolveJobSettings:
    def test_defaults_from_config(self, make_config) -> None:
        settings = resolve_job_settings(make_config())

        assert settings.in_place
        assert settings.output_dir is None
        assert settings.bitrate_override is None

    def test_output_dir_implies_separate(self, make_config) -> None:
        overrides = JobOverrides(profile_name="p", output_dir=Path("/out"))

        settings = resolve_job_settings(make_config(), overrides)

        assert not settings.in_place
        assert settings.output_dir == Path("/out")

    def test_in_place_flag_wins(self, make_config) -> None:
        config = make_config(
            output=OutputConfig(mode="separate", directory=Path("/out"))
        )
        overrides = JobOverrides(profile_name="p", in_place=True)

        settings = resolve_job_settings(config, overrides)

        assert settings.in_place
        assert settings.output_dir is None

    def test_separate_without_directory_falls_back(self, make_config) -> None:
        overrides = JobOverrides(profile_name="p", in_place=False)

        settings = resolve_job_settings(make_config(), overrides)

        assert settings.in_place

    def test_height_and_bitrate(self, make_config) -> None:
        overrides = JobOverrides(profile_name="p", max_height=480, bitrate="1M")

        settings = resolve_job_settings(make_config(), overrides)

        assert settings.max_height_override == 480
        assert settings.bitrate_override == "1M"
