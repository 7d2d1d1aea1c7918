"""
Pytest configuration and fixtures for record store tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from recordstore.config import ENV_OVERRIDES
from recordstore.core.models import ConstantFields, Location, WeatherEnum
from recordstore.storage.connection import StoreConnection
from recordstore.storage.record_store import RecordStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't touch the filesystem"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests against on-disk SQLite databases"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests of full record lifecycles and the CLI"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# CLOCK FIXTURES
# =======================

class StepClock:
    """Deterministic store clock advancing a fixed step per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now


@pytest.fixture(scope="function")
def clock() -> StepClock:
    """Clock starting at 2024-03-01 12:00:00 UTC, one minute per tick"""
    return StepClock(datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


# =======================
# STORE FIXTURES
# =======================

@pytest.fixture(scope="function")
def memory_store(clock) -> Generator[RecordStore, None, None]:
    """
    In-memory record store

    Writes while a list_all() iteration is still open are not supported in
    this mode (shared-cache table locks); use file_store for those.

    Yields:
        Open RecordStore backed by a private in-memory database
    """
    store = RecordStore(StoreConnection(in_memory=True), clock=clock)
    yield store
    store.close()


@pytest.fixture(scope="function")
def db_path(tmp_path) -> Path:
    """Path of a fresh database file inside tmp_path"""
    return tmp_path / "driver" / "records.db"


@pytest.fixture(scope="function")
def file_store(db_path, clock) -> Generator[RecordStore, None, None]:
    """
    WAL-mode record store on disk

    Yields:
        Open RecordStore backed by db_path
    """
    store = RecordStore(StoreConnection(db_path=db_path, busy_timeout=2.0), clock=clock)
    yield store
    store.close()


# =======================
# DATA FIXTURES
# =======================

@pytest.fixture
def sample_constants() -> ConstantFields:
    """Constants for an event at 2024-01-01 00:00 UTC in clear weather, no location"""
    return ConstantFields(
        occurred_from=datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc),
        weather=WeatherEnum.CLEAR,
    )


@pytest.fixture
def located_constants() -> ConstantFields:
    """Constants with a location on the equator/prime meridian"""
    return ConstantFields(
        occurred_from=datetime(2024, 2, 14, 8, 30, tzinfo=timezone.utc),
        location=Location(latitude=0.0, longitude=0.0),
    )


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(autouse=True)
def clean_store_env(monkeypatch):
    """
    Remove store environment overrides for the duration of each test

    Variables written later by load_dotenv() are removed again on teardown.
    """
    for name in ENV_OVERRIDES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def env_file(tmp_path) -> Path:
    """Write a .env file with store overrides"""
    path = tmp_path / ".env"
    path.write_text(
        "RECORD_STORE_PATH=/data/driver/records.db\n"
        "RECORD_STORE_BUSY_TIMEOUT=2.5\n"
        "LOG_FORMAT=TEXT\n"
    )
    return path
