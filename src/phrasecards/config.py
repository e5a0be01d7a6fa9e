"""Configuration settings for the flashcard backend."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
CACHE_DIR = DATA_DIR / "cache"

LEVELS = ["A1", "A2", "B1", "B2", "C1", "C2"]


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    for directory in (DATA_DIR, CACHE_DIR):
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///phrasecards.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class CacheSettings:
    """Local cache settings."""
    path: Path = Path(os.getenv("CACHE_FILE", str(CACHE_DIR / "local_storage.json")))
    user_key: str = os.getenv("CACHE_USER_KEY", "user")


@dataclass
class PersistenceSettings:
    """Retry policy for progress writes."""
    max_attempts: int = int(os.getenv("PERSIST_MAX_ATTEMPTS", "5"))
    base_delay: float = float(os.getenv("PERSIST_BASE_DELAY", "0.5"))
    max_delay: float = float(os.getenv("PERSIST_MAX_DELAY", "30"))


@dataclass
class StudySettings:
    """Study and account settings."""
    default_level: str = os.getenv("DEFAULT_LEVEL", "A1")
    min_password_length: int = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
    reset_token_hours: int = int(os.getenv("RESET_TOKEN_HOURS", "1"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_cache_settings() -> CacheSettings:
    """Get cache settings."""
    return CacheSettings()


def get_persistence_settings() -> PersistenceSettings:
    """Get persistence settings."""
    return PersistenceSettings()


def get_study_settings() -> StudySettings:
    """Get study settings."""
    return StudySettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    cache: CacheSettings = field(default_factory=get_cache_settings)
    persistence: PersistenceSettings = field(default_factory=get_persistence_settings)
    study: StudySettings = field(default_factory=get_study_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.study.default_level not in LEVELS:
            raise ValueError(f"DEFAULT_LEVEL must be one of {', '.join(LEVELS)}")

        if self.study.min_password_length < 1:
            raise ValueError("MIN_PASSWORD_LENGTH must be positive")

        if self.persistence.max_attempts < 1:
            raise ValueError("PERSIST_MAX_ATTEMPTS must be positive")

        if self.persistence.base_delay < 0 or self.persistence.max_delay < self.persistence.base_delay:
            raise ValueError("PERSIST_MAX_DELAY must not be smaller than PERSIST_BASE_DELAY")


# Create global settings instance
settings = Settings()
settings.validate()
