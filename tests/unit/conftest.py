"""Pytest configuration for unit tests."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Try to load test-specific environment file if it exists
test_env_file = Path(__file__).parent.parent / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file)

# Set environment variables BEFORE any notebook_relay imports
os.environ.setdefault("ENV", "testing")

from cryptography.fernet import Fernet

if not os.getenv("ENCRYPTION_KEY"):
    os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()

import pytest

from fakes import FakeDriverFactory, answer_script
from notebook_relay.core.settings import reset_settings
from notebook_relay.services.classifier import PhraseSets, ResponseClassifier
from notebook_relay.utils.encryption import reset_encryption


@pytest.fixture(autouse=True)
def _isolated_globals(monkeypatch, tmp_path):
    """Fresh settings and encryption instances, and a private data dir, per test."""
    monkeypatch.setenv("RELAY_DATA_DIR", str(tmp_path / "data"))
    reset_settings()
    reset_encryption()
    yield
    reset_settings()
    reset_encryption()


@pytest.fixture
def fast_classifier():
    """Classifier that polls without sleeping."""
    return ResponseClassifier(PhraseSets(), timeout_ms=2000, poll_interval_ms=0)


@pytest.fixture
def driver_factory():
    """Factory whose drivers answer 'The answer is 42.'"""
    return FakeDriverFactory(lambda url: answer_script("The answer is 42."))
