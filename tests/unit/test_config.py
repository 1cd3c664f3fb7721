"""
Tests for Settings loading from the environment.
"""

import pytest
from dealscout.config import Settings, get_settings
from pydantic import ValidationError


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in ("DEALSCOUT_BACKEND", "DEALSCOUT_MODEL", "DEALSCOUT_MAX_STEPS"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings(_env_file=None)
        assert settings.backend == "ollama"
        assert settings.max_steps == 3
        assert settings.memory_capacity == 100
        assert settings.conversation_capacity == 20
        assert settings.db_path is None
        assert (
            settings.strong_pass_threshold,
            settings.soft_pass_threshold,
            settings.borderline_threshold,
        ) == (80, 60, 40)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEALSCOUT_BACKEND", "openai")
        monkeypatch.setenv("DEALSCOUT_MAX_STEPS", "5")
        monkeypatch.setenv("DEALSCOUT_DB_PATH", "/tmp/scout.db")
        settings = Settings(_env_file=None)
        assert settings.backend == "openai"
        assert settings.max_steps == 5
        assert settings.db_path == "/tmp/scout.db"

    def test_env_file(self, temp_dir, monkeypatch):
        monkeypatch.delenv("DEALSCOUT_MODEL", raising=False)
        env_file = temp_dir / ".env"
        env_file.write_text("DEALSCOUT_MODEL=llama3.2:1b\nUNRELATED=1\n")
        assert Settings(_env_file=env_file).model == "llama3.2:1b"

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            Settings(backend="cloud", _env_file=None)

    def test_rejects_zero_step_budget(self):
        with pytest.raises(ValidationError):
            Settings(max_steps=0, _env_file=None)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
