"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from stringlift.config import (
    DEFAULT_ALLOWED_GLOBALS,
    PatternConfig,
    PipelineConfig,
    Settings,
    load_settings,
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("STRINGLIFT_TIMEOUT_MS", "STRINGLIFT_QUOTE_CHAR", "STRINGLIFT_REWRITE_HELPERS"):
        monkeypatch.delenv(name, raising=False)


class TestPipelineConfig:
    """Tests for PipelineConfig defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        config = PipelineConfig()

        assert config.timeout_ms == 2000
        assert config.max_cycles == 25
        assert config.quote_char == "'"
        assert config.rewrite_helpers is False
        assert config.patterns.loop_tests == ["double_negated_array"]
        assert config.patterns.rotate_methods == [("push", "shift")]
        assert "parseInt" in config.allowed_globals
        assert "require" not in config.allowed_globals

    def test_allowed_globals_not_shared(self):
        """Test each config gets its own allow-list."""
        config = PipelineConfig()
        config.allowed_globals.append("console")

        assert "console" not in DEFAULT_ALLOWED_GLOBALS

    def test_rejects_bad_values(self):
        """Test invalid values are rejected."""
        with pytest.raises(ValidationError):
            PipelineConfig(timeout_ms=0)
        with pytest.raises(ValidationError):
            PipelineConfig(quote_char="`")
        with pytest.raises(ValidationError):
            PatternConfig(loop_tests=["forever"])


class TestPatternConfig:
    """Tests for PatternConfig."""

    def test_from_file(self, tmp_path):
        """Test loading from JSON."""
        path = tmp_path / "patterns.json"
        path.write_text('{"rotate_methods": [["unshift", "pop"]], "require_shuffle": false}', encoding="utf-8")

        patterns = PatternConfig.from_file(path)

        assert patterns.rotate_methods == [("unshift", "pop")]
        assert patterns.require_shuffle is False
        assert patterns.require_catch_rotate is True


class TestSettings:
    """Tests for Settings."""

    def test_environment(self, monkeypatch):
        """Test STRINGLIFT_* variables are read."""
        monkeypatch.setenv("STRINGLIFT_TIMEOUT_MS", "500")
        monkeypatch.setenv("STRINGLIFT_QUOTE_CHAR", '"')

        settings = load_settings()

        assert settings.timeout_ms == 500
        assert settings.quote_char == '"'

    def test_dotenv_file(self, tmp_path):
        """Test values from a .env file in the working directory."""
        (tmp_path / ".env").write_text("STRINGLIFT_REWRITE_HELPERS=true\n", encoding="utf-8")

        settings = Settings()

        assert settings.rewrite_helpers is True

    def test_overrides_win(self, monkeypatch):
        """Test explicit overrides beat the environment; None is ignored."""
        monkeypatch.setenv("STRINGLIFT_TIMEOUT_MS", "500")

        settings = load_settings(timeout_ms=900, max_cycles=None)

        assert settings.timeout_ms == 900
        assert settings.max_cycles == 25

    def test_pipeline_config(self, tmp_path):
        """Test settings build a pipeline configuration."""
        path = tmp_path / "patterns.json"
        path.write_text('{"max_key_length": 4}', encoding="utf-8")

        config = Settings(patterns_file=path, max_cycles=7).pipeline_config()

        assert config.max_cycles == 7
        assert config.patterns.max_key_length == 4
