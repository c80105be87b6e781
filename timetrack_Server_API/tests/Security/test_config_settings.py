# tests/Security/test_config_settings.py
# Description: Tests for environment-driven settings.
#
# Imports
#
# 3rd-party imports
import pytest
#
# Local Imports
from timetrack_Server_API.app.core.config import load_settings, DEFAULT_SINGLE_USER_OWNER_ID
#
#######################################################################################################################
#
# Functions:

_SETTING_ENV_VARS = (
    "APP_MODE", "API_KEY", "SINGLE_USER_OWNER_ID", "JWT_SECRET_KEY", "TIMETRACK_DB_PATH", "SYNC_PULL_MODE",
    "SYNC_DELTA_OVERLAP_MS", "SYNC_TIMEOUT_SECONDS", "SYNC_RATE_LIMIT", "ALLOWED_ORIGINS", "PORT", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _SETTING_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:

    def test_defaults(self, clean_env):
        config = load_settings()
        assert config["SINGLE_USER_MODE"] is True
        assert config["SINGLE_USER_OWNER_ID"] == DEFAULT_SINGLE_USER_OWNER_ID
        assert config["SYNC_PULL_MODE"] == "full"
        assert config["SYNC_DELTA_OVERLAP_MS"] == 0
        assert config["SYNC_TIMEOUT_SECONDS"] == 30
        assert config["PORT"] == 8080
        assert config["ALLOWED_ORIGINS"] == []

    def test_multi_user_and_sync_overrides(self, clean_env):
        clean_env.setenv("APP_MODE", "MULTI")
        clean_env.setenv("SYNC_PULL_MODE", "delta")
        clean_env.setenv("SYNC_DELTA_OVERLAP_MS", "250")
        clean_env.setenv("ALLOWED_ORIGINS", "http://localhost:3000, https://app.example.com ,")
        clean_env.setenv("LOG_LEVEL", "debug")
        config = load_settings()
        assert config["SINGLE_USER_MODE"] is False
        assert config["SYNC_PULL_MODE"] == "delta"
        assert config["SYNC_DELTA_OVERLAP_MS"] == 250
        assert config["ALLOWED_ORIGINS"] == ["http://localhost:3000", "https://app.example.com"]
        assert config["LOG_LEVEL"] == "DEBUG"

    @pytest.mark.parametrize("name, raw, key, expected", [
        ("SYNC_PULL_MODE", "sideways", "SYNC_PULL_MODE", "full"),
        ("SYNC_TIMEOUT_SECONDS", "0", "SYNC_TIMEOUT_SECONDS", 30),
        ("SYNC_TIMEOUT_SECONDS", "soon", "SYNC_TIMEOUT_SECONDS", 30),
        ("SYNC_DELTA_OVERLAP_MS", "-5", "SYNC_DELTA_OVERLAP_MS", 0),
        ("PORT", "eighty", "PORT", 8080),
    ])
    def test_invalid_values_fall_back(self, clean_env, name, raw, key, expected):
        clean_env.setenv(name, raw)
        assert load_settings()[key] == expected

#
# End of test_config_settings.py
#######################################################################################################################
