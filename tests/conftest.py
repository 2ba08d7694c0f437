"""
Shared test fixtures for sloppy-scan tests.
"""

# Note: config.py skips .sloppy.yml when pytest is detected and
# SLOPPY_CONFIG_FILE is not set, so a developer's config never leaks in.
import os
from datetime import datetime, timezone

import pytest

from sloppy_scan.config import Settings, get_settings

_ENV_PREFIXES = ("SLOPPY_", "GITHUB_MODELS_")


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Drop sloppy-scan env vars and the cached settings around every test."""
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings with every pause disabled so scans run instantly.

    The model verification pass is off here; tests that cover it turn it on.
    """
    return Settings(
        scan={
            "stagger_seconds": 0.0,
            "batch_pause_seconds": 0.0,
            "split_pause_seconds": 0.0,
            "verification_pause_seconds": 0.0,
            "ai_verification": False,
        }
    )


@pytest.fixture
def workspace(tmp_path):
    """Empty workspace directory; returns a helper that writes files into it."""

    def write(relative: str, content: str) -> str:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return str(path)

    write.root = str(tmp_path)
    return write


class FixedClock:
    """Settable UTC clock for budget tests."""

    def __init__(self, now: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock()
