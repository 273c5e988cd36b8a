"""Tests for the environment config and YAML config file helpers."""

from pathlib import Path

import pytest
import yaml

from linecast.shared.config import (
    EnvironConfig,
    config,
    find_config_file,
    load_config_file,
    save_config_file,
)
from linecast.utils.app_errors import ConfigError


class TestEnvironConfig:
    def test_is_singleton(self):
        assert EnvironConfig() is config

    def test_environment_overrides_env_files(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SERVER_DELAY_MS", "42")
        config.reload()
        try:
            assert config.get_int("SERVER_DELAY_MS", 1000) == 42
        finally:
            monkeypatch.undo()
            config.reload()

    def test_typed_getters(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setitem(config._config, "TEST_INT", "12")
        monkeypatch.setitem(config._config, "TEST_FLOAT", "1.5")
        monkeypatch.setitem(config._config, "TEST_BOOL", "Yes")

        assert config.get_int("TEST_INT", 0) == 12
        assert config.get_float("TEST_FLOAT", 0.0) == 1.5
        assert config.get_bool("TEST_BOOL") is True
        assert config.get_str("TEST_MISSING", "fallback") == "fallback"

    def test_invalid_number_falls_back_to_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setitem(config._config, "TEST_INT", "ten")

        assert config.get_int("TEST_INT", 10) == 10

    def test_missing_key_raises(self):
        with pytest.raises(KeyError, match="not found"):
            config["TEST_DEFINITELY_MISSING"]


class TestConfigFile:
    def test_missing_explicit_file_is_empty(self, tmp_path: Path):
        assert load_config_file(tmp_path / "nope.yaml") == {}

    def test_finds_config_in_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        (tmp_path / "config.yaml").write_text("server:\n  delay: 5\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert find_config_file() == tmp_path / "config.yaml"
        assert load_config_file(None) == {"server": {"delay": 5}}

    def test_no_config_in_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.chdir(tmp_path)

        assert find_config_file() is None
        assert load_config_file(None) == {}

    def test_invalid_yaml_raises(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("server: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="error reading config file"):
            load_config_file(path)

    def test_non_mapping_raises(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config_file(path)

    def test_empty_file_is_empty_config(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config_file(path) == {}

    def test_save_creates_directories(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "config.yaml"

        written = save_config_file({"client": {"output": "out.txt"}}, path)

        assert written == path
        assert yaml.safe_load(path.read_text(encoding="utf-8")) == {
            "client": {"output": "out.txt"}
        }
