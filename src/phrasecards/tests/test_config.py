"""Tests for configuration settings."""
import pytest

from phrasecards.config import (
    LEVELS,
    PersistenceSettings,
    Settings,
    StudySettings,
    settings,
)


def test_base_directories_exist():
    """Test that all required directories exist."""
    from phrasecards.config import BASE_DIR, CACHE_DIR, DATA_DIR

    assert BASE_DIR.exists()
    assert DATA_DIR.exists()
    assert CACHE_DIR.exists()


def test_settings_defaults():
    """Test default settings values."""
    assert settings.study.default_level == "A1"
    assert settings.study.min_password_length == 6
    assert settings.study.reset_token_hours == 1
    assert settings.cache.user_key == "user"
    assert settings.cache.path.name == "local_storage.json"
    assert LEVELS == ["A1", "A2", "B1", "B2", "C1", "C2"]


def test_test_environment_loaded():
    """The test environment file configures an in-memory database and fast retries."""
    assert settings.database.url == "sqlite://"
    assert settings.persistence.base_delay == 0
    assert settings.persistence.max_attempts == 3


def test_validate_rejects_unknown_level():
    """Test validation of the default level."""
    with pytest.raises(ValueError):
        Settings(study=StudySettings(default_level="D1")).validate()


def test_validate_rejects_bad_retry_policy():
    """Test validation of the retry policy."""
    with pytest.raises(ValueError):
        Settings(persistence=PersistenceSettings(max_attempts=0)).validate()
    with pytest.raises(ValueError):
        Settings(persistence=PersistenceSettings(base_delay=5, max_delay=1)).validate()


def test_validate_accepts_defaults():
    """Test that the loaded settings are valid."""
    settings.validate()
