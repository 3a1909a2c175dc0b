"""Tests for layered configuration and pacing settings."""

import logging
from logging.handlers import RotatingFileHandler

import pytest
import yaml
from rich.logging import RichHandler

from agentstream.config import (
    PacingConfig,
    _deep_merge_dicts,
    get_logging_settings,
    get_project_config_paths,
    load_config,
)
from agentstream.utils.errors import ConfigError
from agentstream.utils.logs import setup_logger


def _write_yaml(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))
    return path


class TestLayeredConfig:

    def test_package_defaults(self, isolated_config):
        assert PacingConfig.load() == PacingConfig()

    def test_package_config_has_pacing_section(self, isolated_config):
        config = load_config()
        assert config["pacing"]["boost_window_ms"] == 4000
        assert config["logging"]["level"] == "INFO"

    def test_project_config_overrides_defaults(self, isolated_config):
        _write_yaml(isolated_config / ".agentstream" / "config.yml", {"pacing": {"boost_window_ms": 1000}})
        config = PacingConfig.load()
        assert config.boost_window_ms == 1000.0
        assert config.spooler_period_ms == 33.0

    def test_local_settings_override_project(self, isolated_config):
        _write_yaml(isolated_config / ".agentstream" / "config.yml", {"pacing": {"boost_window_ms": 1000}})
        _write_yaml(isolated_config / ".agentstream" / "settings.local.yml", {"pacing": {"boost_window_ms": 500}})
        assert PacingConfig.load().boost_window_ms == 500.0

    def test_user_config(self, isolated_config, tmp_path):
        _write_yaml(tmp_path / "xdg" / "agentstream" / "config.yml", {"pacing": {"min_chunk_chars": 8}})
        assert PacingConfig.load().min_chunk_chars == 8

    def test_explicit_override_path_wins(self, isolated_config, tmp_path, monkeypatch):
        _write_yaml(isolated_config / ".agentstream" / "config.yml", {"pacing": {"tool_frame_ms": 20}})
        override = _write_yaml(tmp_path / "override.yml", {"pacing": {"tool_frame_ms": 50}})
        monkeypatch.setenv("AGENTSTREAM_CONFIG_PATH", str(override))
        assert PacingConfig.load().tool_frame_ms == 50.0

    def test_missing_override_path_is_ignored(self, isolated_config, tmp_path, monkeypatch):
        monkeypatch.setenv("AGENTSTREAM_CONFIG_PATH", str(tmp_path / "nope.yml"))
        assert PacingConfig.load() == PacingConfig()

    def test_explicit_file_argument(self, isolated_config, tmp_path):
        path = _write_yaml(tmp_path / "pacing.yml", {"pacing": {"hard_wait_max_ms": 200}})
        assert PacingConfig.load(path).hard_wait_max_ms == 200.0

    def test_broken_yaml_falls_back(self, isolated_config):
        path = isolated_config / ".agentstream" / "config.yml"
        path.parent.mkdir()
        path.write_text("pacing: [unclosed")
        assert PacingConfig.load() == PacingConfig()

    def test_project_root_is_git_root(self, tmp_path):
        repo = tmp_path / "repo"
        nested = repo / "src" / "pkg"
        nested.mkdir(parents=True)
        (repo / ".git").mkdir()

        paths = get_project_config_paths(str(nested))
        assert paths["project_root"] == repo.resolve()
        assert paths["project"] == repo.resolve() / ".agentstream" / "config.yml"

    def test_deep_merge(self):
        merged = _deep_merge_dicts({"pacing": {"a": 1, "b": 2}, "x": 1}, {"pacing": {"b": 3}})
        assert merged == {"pacing": {"a": 1, "b": 3}, "x": 1}


class TestEnvironmentOverrides:

    def test_scalar_overrides(self, isolated_config, monkeypatch):
        monkeypatch.setenv("AGENTSTREAM_BOOST_WINDOW_MS", "250")
        monkeypatch.setenv("AGENTSTREAM_MIN_CHUNK_CHARS", "20")
        config = PacingConfig.load()
        assert config.boost_window_ms == 250.0
        assert config.min_chunk_chars == 20
        assert isinstance(config.min_chunk_chars, int)

    def test_unparseable_value(self, isolated_config, monkeypatch):
        monkeypatch.setenv("AGENTSTREAM_SPOOLER_PERIOD_MS", "fast")
        with pytest.raises(ConfigError):
            PacingConfig.load()


class TestPacingConfig:

    def test_defaults(self):
        config = PacingConfig()
        assert config.boost_window_ms == 4000.0
        assert config.spooler_backlog_steps == [(200, 2), (400, 3)]
        assert config.reasoning_backlog_steps == [(40, 2), (100, 3), (200, 4)]

    def test_steps_are_sorted(self):
        config = PacingConfig.from_dict({"reasoning_backlog_steps": [[200, 4], [40, 2]]})
        assert config.reasoning_backlog_steps == [(40, 2), (200, 4)]

    def test_round_trip(self):
        config = PacingConfig(boost_window_ms=1500.0, min_chunk_chars=6)
        assert PacingConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_ignored(self):
        assert PacingConfig.from_dict({"warp_speed": 9}) == PacingConfig()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ewma_weight": 0.0},
            {"ewma_weight": 1.5},
            {"min_chunk_chars": 0},
            {"min_chunk_chars": 300},
            {"soft_wait_min_ms": 200.0},
            {"hard_wait_max_ms": 10.0},
            {"spooler_period_ms": 0.0},
            {"tool_frame_ms": -1.0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError) as exc:
            PacingConfig(**overrides)
        assert exc.value.code == "CONFIG_ERROR"

    def test_invalid_steps(self):
        with pytest.raises(ConfigError):
            PacingConfig.from_dict({"spooler_backlog_steps": "oops"})


class TestLogging:

    def test_logging_settings(self):
        settings = get_logging_settings({"logging": {"level": "debug", "console": True}})
        assert settings == {"level": logging.DEBUG, "console": True}

    def test_logging_defaults(self):
        assert get_logging_settings({}) == {"level": logging.INFO, "console": False}

    def test_setup_logger_writes_file(self, tmp_path):
        logger = setup_logger("test.log", log_dir=tmp_path)
        assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
        assert not logger.propagate

        logging.getLogger("agentstream.streaming").info("hello from the reveal engine")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from the reveal engine" in (tmp_path / "test.log").read_text()

    def test_setup_logger_console(self, tmp_path):
        logger = setup_logger("test.log", log_level=logging.DEBUG, console=True, log_dir=tmp_path)
        assert any(isinstance(h, RichHandler) for h in logger.handlers)
        assert logger.level == logging.DEBUG

    def test_setup_logger_replaces_handlers(self, tmp_path):
        setup_logger("a.log", log_dir=tmp_path)
        logger = setup_logger("b.log", log_dir=tmp_path)
        assert len(logger.handlers) == 1
