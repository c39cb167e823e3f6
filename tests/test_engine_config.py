"""Tests for engine configuration: envparse, config loading and ProjectContext."""

import logging

import pytest

from phasekeeper.lib.config import EngineConfig, load_engine_config
from phasekeeper.lib.envparse import load_env, parse_env
from phasekeeper.state.fs import LocalFS, ProjectContext


def write_env(root, text):
    path = root / ".phasekeeper" / "engine.env"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestParseEnv:
    """KEY=value parsing without a shell."""

    def test_basic(self):
        text = "# comment\n\nSTATE_DIR=.state\nLOCK_TIMEOUT = 5\n"
        assert parse_env(text) == {"STATE_DIR": ".state", "LOCK_TIMEOUT": "5"}

    def test_quotes_stripped(self):
        assert parse_env("A=\"x y\"\nB='z'\n") == {"A": "x y", "B": "z"}

    def test_value_may_contain_equals(self):
        assert parse_env("A=b=c") == {"A": "b=c"}

    def test_missing_equals(self):
        with pytest.raises(ValueError, match="line 1: invalid syntax"):
            parse_env("JUSTAKEY")

    def test_invalid_key(self):
        with pytest.raises(ValueError, match="cfg line 2: invalid key 'lower'"):
            parse_env("A=1\nlower=2", source="cfg")

    @pytest.mark.parametrize("value", ["`id`", "$(id)", "${HOME}", "a;b", "a && b", "a | b"])
    def test_forbidden_patterns(self, value):
        with pytest.raises(ValueError, match="forbidden pattern in value for A"):
            parse_env(f"A={value}")

    def test_load_env_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env(tmp_path / "nope.env")


class TestLoadEngineConfig:
    """engine.env with defaults for anything missing or invalid."""

    def test_defaults_without_file(self, tmp_path):
        assert load_engine_config(tmp_path) == EngineConfig()

    def test_values(self, tmp_path):
        write_env(tmp_path, "STATE_FILE=state.yaml\nLOCK_TIMEOUT=5\nUSE_LOCK=no\n")
        config = load_engine_config(tmp_path)
        assert config.state_file == "state.yaml"
        assert config.lock_timeout == 5
        assert config.use_lock is False
        assert config.state_dir == ".phasekeeper"

    def test_invalid_values_warn(self, tmp_path, caplog):
        write_env(tmp_path, "LOCK_TIMEOUT=soon\nUSE_LOCK=maybe\n")
        with caplog.at_level(logging.WARNING):
            config = load_engine_config(tmp_path)
        assert config.lock_timeout == 30
        assert config.use_lock is True
        assert "[CONFIG] Invalid LOCK_TIMEOUT='soon', using default 30" in caplog.text
        assert "[CONFIG] Invalid USE_LOCK='maybe', using default True" in caplog.text

    def test_negative_timeout(self, tmp_path, caplog):
        write_env(tmp_path, "LOCK_TIMEOUT=-1\n")
        with caplog.at_level(logging.WARNING):
            assert load_engine_config(tmp_path).lock_timeout == 30
        assert "Negative LOCK_TIMEOUT" in caplog.text

    def test_unknown_key_warns(self, tmp_path, caplog):
        write_env(tmp_path, "COLOR=blue\n")
        with caplog.at_level(logging.WARNING):
            load_engine_config(tmp_path)
        assert "[CONFIG] Unknown key COLOR" in caplog.text

    def test_forbidden_value_raises(self, tmp_path):
        write_env(tmp_path, "STATE_FILE=$(rm -rf x)\n")
        with pytest.raises(ValueError, match="forbidden pattern"):
            load_engine_config(tmp_path)


class TestProjectContext:
    """Paths derived from root and config."""

    def test_create_defaults(self, tmp_path):
        ctx = ProjectContext.create(tmp_path)
        assert ctx.state_dir == tmp_path / ".phasekeeper"
        assert ctx.state_file == "project/state.yaml"
        assert ctx.lock_path == tmp_path / ".phasekeeper" / "locks" / "state.lock"
        assert isinstance(ctx.fs, LocalFS)
        assert ctx.fs.root == ctx.state_dir

    def test_create_reads_engine_env(self, tmp_path):
        write_env(tmp_path, "STATE_FILE=custom.yaml\n")
        ctx = ProjectContext.create(tmp_path)
        assert ctx.state_file == "custom.yaml"

    def test_custom_fs(self, tmp_path):
        fs = LocalFS(tmp_path / "elsewhere")
        ctx = ProjectContext(root=tmp_path, fs=fs)
        assert ctx.fs is fs
