"""Configuration tests."""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import core.config
from core.config import Config, get_config, reload_config


@pytest.fixture
def fresh_global_config():
    core.config._config = None
    yield
    core.config._config = None


class TestConfig:

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("VIDEO_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("VIDEO_MAX_POLL_ATTEMPTS", "12")
        monkeypatch.setenv("VIDEO_OUTPUT_DIR", "/srv/videos")

        config = Config.from_env()

        assert config.polling.interval_seconds == 2.5
        assert config.polling.max_attempts == 12
        assert config.storage.output_dir == "/srv/videos"

    def test_blank_numbers_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("VIDEO_MAX_POLL_ATTEMPTS", " ")
        assert Config.from_env().polling.max_attempts == 60

    def test_validate_reports_missing_keys(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "FAL_KEY", "HEYGEN_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        issues = Config.from_env().validate()

        assert len(issues) == 3
        assert any("FAL_KEY" in issue for issue in issues)

    def test_credentials_snapshot(self, monkeypatch):
        monkeypatch.setenv("HEYGEN_API_KEY", "heygen-key")
        config = Config.from_env()
        credentials = config.credentials()

        config.api.heygen_api_key = "rotated"
        assert credentials.heygen_api_key == "heygen-key"


class TestGlobalConfig:

    def test_get_config_is_cached(self, fresh_global_config):
        assert get_config() is get_config()

    def test_reload_picks_up_new_environment(self, monkeypatch, fresh_global_config):
        monkeypatch.setenv("VIDEO_JOBS_DIR", "/var/jobs-a")
        first = get_config()
        assert first.storage.jobs_dir == "/var/jobs-a"

        monkeypatch.setenv("VIDEO_JOBS_DIR", "/var/jobs-b")
        assert get_config().storage.jobs_dir == "/var/jobs-a"

        reload_config()
        assert get_config() is not first
        assert get_config().storage.jobs_dir == "/var/jobs-b"
