"""Tests for environment-driven configuration."""
import pytest

from callscope.config import Config, get_config, reset_config
from callscope.errors import ConfigError


class TestDefaults:
    def test_defaults(self, tmp_path):
        config = Config(tmp_path)
        assert config.up_depth == 2
        assert config.down_depth == 2
        assert config.scope == "project"
        assert config.exclude_dirs == []
        assert config.log_level == "WARNING"

    def test_singleton(self, tmp_path):
        assert get_config(tmp_path) is get_config(tmp_path)
        first = get_config(tmp_path)
        reset_config()
        assert get_config(tmp_path) is not first


class TestEnvironment:
    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CALLSCOPE_UP_DEPTH", "5")
        monkeypatch.setenv("CALLSCOPE_DOWN_DEPTH", "0")
        monkeypatch.setenv("CALLSCOPE_SCOPE", "ALL")
        monkeypatch.setenv("CALLSCOPE_EXCLUDE_DIRS", "generated, fixtures,,")
        monkeypatch.setenv("CALLSCOPE_LOG_LEVEL", "debug")
        config = Config(tmp_path)
        assert config.up_depth == 5
        assert config.down_depth == 0
        assert config.scope == "all"
        assert config.exclude_dirs == ["generated", "fixtures"]
        assert config.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CALLSCOPE_UP_DEPTH=4\nCALLSCOPE_SCOPE=package\n")
        config = Config(tmp_path)
        assert config.up_depth == 4
        assert config.scope == "package"

    def test_environment_beats_dotenv(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("CALLSCOPE_UP_DEPTH=4\n")
        monkeypatch.setenv("CALLSCOPE_UP_DEPTH", "1")
        assert Config(tmp_path).up_depth == 1


class TestValidation:
    @pytest.mark.parametrize("var,value", [
        ("CALLSCOPE_UP_DEPTH", "two"),
        ("CALLSCOPE_DOWN_DEPTH", "-1"),
        ("CALLSCOPE_SCOPE", "world"),
        ("CALLSCOPE_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values(self, tmp_path, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(ConfigError) as exc:
            Config(tmp_path)
        assert exc.value.context["variable"] == var
        assert exc.value.code == "config_error"
