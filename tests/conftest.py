"""Shared fixtures for fleetrank tests.

Config is read at import time, so the environment is primed here before
any ``fleetrank`` module is imported.
"""

import os

os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("XP_RECALC_MINUTES", "0")

import pytest  # noqa: E402

from fleetrank import events  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Each test gets its own process event bus."""
    events.bus = None
    yield
    events.bus = None


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "fleetrank.db"
