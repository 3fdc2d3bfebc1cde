"""Unit tests for config file loading and precedence."""

from pathlib import Path

import pytest

from vidshrink.config import (
    ConfigError,
    ConfigSource,
    get_data_dir,
    get_default_config_path,
    load_config,
    load_config_file,
)
from vidshrink.config.loader import DEFAULT_DATA_DIR

SAMPLE_CONFIG = """
[paths]
media_roots = ["/media/tv", "/media/movies"]
temp_dir = "/scratch/vidshrink"

[tools]
ffmpeg = "/opt/ffmpeg/bin/ffmpeg"

[transcode]
tv_max_height = 576
hardware_profile = "nvidia"
video_extensions = ["MKV", "mp4"]

[transcode.bitrates]
low = "1500K"

[transcode.exclusions]
directories = ["extras"]

[transcode.nvidia]
preset = "p6"

[jobs]
max_concurrency = 2
max_attempts = 5

[logging]
level = "debug"
format = "json"
"""


@pytest.fixture
def data_dir(temp_dir: Path) -> Path:
    return temp_dir / "data"


@pytest.fixture
def env(data_dir: Path) -> dict[str, str]:
    return {"VIDSHRINK_DATA_DIR": str(data_dir)}


@pytest.fixture
def config_file(data_dir: Path) -> Path:
    data_dir.mkdir(parents=True)
    path = data_dir / "config.toml"
    path.write_text(SAMPLE_CONFIG)
    return path


# =============================================================================
# Locations
# =============================================================================


class TestLocations:
    def test_defaults(self) -> None:
        assert get_data_dir({}) == DEFAULT_DATA_DIR
        assert get_default_config_path({}) == DEFAULT_DATA_DIR / "config.toml"

    def test_data_dir_from_env(self, env: dict[str, str], data_dir: Path) -> None:
        assert get_data_dir(env) == data_dir
        assert get_default_config_path(env) == data_dir / "config.toml"

    def test_config_path_from_env(self) -> None:
        env = {"VIDSHRINK_CONFIG_PATH": "/etc/vidshrink.toml"}

        assert get_default_config_path(env) == Path("/etc/vidshrink.toml")


class TestLoadConfigFile:
    def test_missing_optional_file(self, temp_dir: Path) -> None:
        assert load_config_file(temp_dir / "none.toml") == {}

    def test_missing_required_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(temp_dir / "none.toml", required=True)

    def test_invalid_toml(self, temp_dir: Path) -> None:
        path = temp_dir / "bad.toml"
        path.write_text("[jobs\nmax_concurrency = ")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config_file(path)


# =============================================================================
# Precedence
# =============================================================================


class TestLoadConfig:
    def test_defaults_without_file(
        self, env: dict[str, str], data_dir: Path
    ) -> None:
        config = load_config(env=env)

        assert config.paths.media_roots == []
        assert config.paths.job_store == data_dir / "jobs.json"
        assert config.paths.analysis_cache == data_dir / "analysis-cache.json"
        assert config.paths.error_log == data_dir / "errors.json"
        assert config.jobs.max_concurrency == 1
        assert config.jobs.checkpoint_interval == 5
        assert config.transcode.hardware_profile == "auto"
        assert config.output.in_place

    def test_file_values(self, env: dict[str, str], config_file: Path) -> None:
        config = load_config(env=env)

        assert config.paths.media_roots == [Path("/media/tv"), Path("/media/movies")]
        assert config.paths.temp_dir == Path("/scratch/vidshrink")
        assert config.tools.ffmpeg == Path("/opt/ffmpeg/bin/ffmpeg")
        assert config.tools.ffprobe is None
        assert config.transcode.tv_max_height == 576
        assert config.transcode.movie_max_height == 1080
        assert config.transcode.video_extensions == (".mkv", ".mp4")
        assert config.transcode.bitrates.low == "1500K"
        assert config.transcode.bitrates.medium == "5M"
        assert config.transcode.exclusions.directories == ("extras",)
        assert config.transcode.encoder_settings == {"nvidia": {"preset": "p6"}}
        assert config.jobs.max_attempts == 5
        assert config.logging.format == "json"

    def test_env_overrides_file(self, env: dict[str, str], config_file: Path) -> None:
        env["VIDSHRINK_MAX_CONCURRENCY"] = "4"
        env["VIDSHRINK_MEDIA_DIRS"] = "/srv/a:/srv/b"

        config = load_config(env=env)

        assert config.jobs.max_concurrency == 4
        assert config.paths.media_roots == [Path("/srv/a"), Path("/srv/b")]
        assert config.jobs.max_attempts == 5

    def test_cli_overrides_env(self, env: dict[str, str], config_file: Path) -> None:
        env["VIDSHRINK_MAX_CONCURRENCY"] = "4"

        config = load_config(
            cli_source=ConfigSource(
                max_concurrency=3, media_roots=[Path("/cli/media")]
            ),
            env=env,
        )

        assert config.jobs.max_concurrency == 3
        assert config.paths.media_roots == [Path("/cli/media")]

    def test_explicit_config_path(self, env: dict[str, str], temp_dir: Path) -> None:
        path = temp_dir / "other.toml"
        path.write_text("[jobs]\ncheckpoint_interval = 10\n")

        config = load_config(config_path=path, env=env)

        assert config.jobs.checkpoint_interval == 10

    def test_explicit_config_path_must_exist(
        self, env: dict[str, str], temp_dir: Path
    ) -> None:
        with pytest.raises(ConfigError):
            load_config(config_path=temp_dir / "missing.toml", env=env)

    def test_invalid_value_in_file(self, env: dict[str, str], data_dir: Path) -> None:
        data_dir.mkdir(parents=True)
        (data_dir / "config.toml").write_text("[jobs]\nmax_concurrency = 0\n")

        with pytest.raises(ConfigError, match="max_concurrency"):
            load_config(env=env)

    def test_unparseable_env_value_is_ignored(self, env: dict[str, str]) -> None:
        env["VIDSHRINK_MAX_ATTEMPTS"] = "lots"

        assert load_config(env=env).jobs.max_attempts == 3
