"""Unit tests for l10n_engine.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from l10n_engine.config import PlatformEnv, Settings, load_settings
from pydantic import ValidationError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run each test away from any ``.env`` file and stray L10N_ variables."""
    monkeypatch.chdir(tmp_path)
    for name in ("L10N_ENV", "L10N_DEBUG", "L10N_LOG_LEVEL", "L10N_MAX_CONCURRENT_JOBS", "L10N_CACHE_DIR"):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Settings - default values
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_default_env(self):
        assert Settings().env == PlatformEnv.DEV

    def test_default_database_url_is_sqlite(self):
        assert Settings().database_url.startswith("sqlite+aiosqlite://")

    def test_default_jobs_and_cache(self):
        settings = Settings()
        assert settings.max_concurrent_jobs == 8
        assert settings.cache_dir == Path(".l10n/cache")

    def test_default_message_length(self):
        assert Settings().message_max_length == 256

    def test_default_logging(self):
        settings = Settings()
        assert settings.log_level == "INFO"
        assert settings.structured_logging is False


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


class TestSettingsEnvOverrides:
    def test_env_var_overrides_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("L10N_ENV", "prod")
        assert Settings().env == PlatformEnv.PROD

    def test_env_var_overrides_concurrency(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("L10N_MAX_CONCURRENT_JOBS", "2")
        assert Settings().max_concurrent_jobs == 2

    def test_env_var_overrides_git_timeouts(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("L10N_GIT_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("L10N_GIT_FETCH_TIMEOUT_SECONDS", "60")
        settings = Settings()
        assert settings.git_timeout_seconds == 5
        assert settings.git_fetch_timeout_seconds == 60

    def test_env_var_overrides_cache_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("L10N_CACHE_DIR", str(tmp_path / "c"))
        assert Settings().cache_dir == tmp_path / "c"

    def test_dotenv_file_is_read(self, tmp_path: Path):
        (tmp_path / ".env").write_text("L10N_LOG_LEVEL=debug\n", encoding="utf-8")
        assert Settings().log_level == "DEBUG"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestSettingsValidation:
    def test_log_level_is_normalised(self):
        assert Settings(log_level="warning").log_level == "WARNING"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValidationError):
            Settings(max_concurrent_jobs=0)

    def test_zero_git_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Settings(git_timeout_seconds=0)

    @pytest.mark.parametrize("length", [0, 257])
    def test_message_limit_must_fit_column(self, length: int):
        with pytest.raises(ValidationError):
            Settings(message_max_length=length)


class TestLoadSettings:
    def test_overrides_apply(self):
        settings = load_settings(message_max_length=80, debug=True)
        assert settings.message_max_length == 80
        assert settings.debug is True
