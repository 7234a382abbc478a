"""Tests for traceview configuration loading."""
from __future__ import annotations

from pathlib import Path

import pytest

from traceview.config import (
    ENV_KEYS,
    Config,
    _find_env_file,
    get_config,
    load_config,
    load_config_file,
    parse_env_file,
    set_config,
)
from traceview.errors import ConfigError, ErrorCode


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run each test in an empty git root with no TRACEVIEW_* variables set."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    (tmp_path / ".git").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestParseEnvFile:
    def test_parses_quotes_exports_and_comments(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# traceview settings\n"
            "\n"
            "TRACEVIEW_UTC=true\n"
            'export TRACEVIEW_SERVICE_NAME="frontend"\n'
            "TRACEVIEW_LOG_LEVEL='debug'\n"
            "not a setting\n",
            encoding="utf-8",
        )
        assert parse_env_file(env_file) == {
            "TRACEVIEW_UTC": "true",
            "TRACEVIEW_SERVICE_NAME": "frontend",
            "TRACEVIEW_LOG_LEVEL": "debug",
        }

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert parse_env_file(tmp_path / "missing.env") == {}


class TestFindEnvFile:
    def test_finds_env_in_parent(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("TRACEVIEW_UTC=1\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert _find_env_file(nested) == (tmp_path / ".env").resolve()

    def test_stops_at_git_root(self, tmp_path: Path) -> None:
        assert _find_env_file(tmp_path) is None


class TestLoadConfig:
    def test_defaults(self) -> None:
        config = load_config()

        assert config == Config()
        assert not config.is_parallel()

    def test_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEVIEW_UTC", "yes")
        monkeypatch.setenv("TRACEVIEW_MAX_WORKERS", "4")
        monkeypatch.setenv("TRACEVIEW_VALIDATE", "off")

        config = load_config()
        assert config.use_utc is True
        assert config.max_workers == 4
        assert config.is_parallel()
        assert config.schema_validation is False

    def test_env_file_overrides_environment(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("TRACEVIEW_SERVICE_NAME", "from-env")
        env_file = tmp_path / "custom.env"
        env_file.write_text("TRACEVIEW_SERVICE_NAME=from-file\n", encoding="utf-8")

        config = load_config(env_file=env_file)
        assert config.service_name == "from-file"
        assert config.env_file_path == env_file

    def test_discovered_env_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("TRACEVIEW_LOG_LEVEL=info\n", encoding="utf-8")

        config = load_config()
        assert config.log_level == "INFO"
        assert config.env_file_path is not None

    def test_missing_env_file_is_ignored(self, tmp_path: Path) -> None:
        config = load_config(env_file=tmp_path / "nope.env")
        assert config.env_file_path is None

    def test_yaml_overrides_env_and_cli_overrides_yaml(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("TRACEVIEW_SERVICE_NAME", "from-env")
        monkeypatch.setenv("TRACEVIEW_UTC", "false")
        (tmp_path / "traceview.yaml").write_text(
            "service_name: from-yaml\nuse_utc: true\nmax_workers: 2\n", encoding="utf-8"
        )

        config = load_config(cli_overrides={"use_utc": False, "log_level": None})
        assert config.service_name == "from-yaml"
        assert config.use_utc is False
        assert config.max_workers == 2
        assert config.log_level == "WARNING"
        assert config.config_file_path is not None
        assert config.config_file_path.name == "traceview.yaml"

    def test_invalid_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRACEVIEW_MAX_WORKERS", "lots")
        with pytest.raises(ConfigError) as exc_info:
            load_config()
        assert exc_info.value.code == ErrorCode.E007

        monkeypatch.setenv("TRACEVIEW_MAX_WORKERS", "0")
        with pytest.raises(ConfigError):
            load_config()

        monkeypatch.delenv("TRACEVIEW_MAX_WORKERS")
        monkeypatch.setenv("TRACEVIEW_UTC", "maybe")
        with pytest.raises(ConfigError):
            load_config()

    def test_to_dict(self, tmp_path: Path) -> None:
        config = load_config(cli_overrides={"use_utc": True})
        data = config.to_dict()
        assert data["use_utc"] is True
        assert data["env_file_path"] is None
        assert data["config_file_path"] is None


class TestLoadConfigFile:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config_file(tmp_path / "missing.yaml")
        assert exc_info.value.code == ErrorCode.E001

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    @pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
    def test_invalid_file(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config_file(path)
        assert exc_info.value.code == ErrorCode.E002


class TestGlobalConfig:
    def test_set_then_get(self) -> None:
        config = Config(service_name="web")
        set_config(config)
        assert get_config() is config
