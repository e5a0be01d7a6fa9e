"""Test configuration."""
import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from phrasecards.config import ensure_directories


@pytest.fixture(autouse=True)
def setup_test_environment(tmp_path, monkeypatch):
    """Keep data written by tests inside a temporary directory."""
    monkeypatch.chdir(tmp_path)
    ensure_directories()

    yield
