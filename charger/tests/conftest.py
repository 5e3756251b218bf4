"""
Shared test fixtures for controller tests.

Provides environment variable fixtures for ChargerSettings configuration
tests, a default charging policy and a controllable clock.  All ``SOLIS_*``
env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from charger.src.config import PolicyConfig

# All ChargerSettings environment variable names, used for cleanup.
_ALL_SOLIS_ENV_VARS = (
    "SOLIS_API_URL",
    "SOLIS_KEY_ID",
    "SOLIS_KEY_SECRET",
    "SOLIS_INVERTER_SN",
    "SOLIS_GRID_CHARGING_DELAY",
    "SOLIS_MIN_BATTERY_PERCENT",
    "SOLIS_MAX_BATTERY_PERCENT",
    "SOLIS_POLL_INTERVAL_S",
    "SOLIS_REQUEST_TIMEOUT_S",
    "SOLIS_LOG_LEVEL",
    "SOLIS_HEALTH_PATH",
)

T0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC)
"""Fixed reference time used across the suite."""


class FakeClock:
    """Callable clock whose time the test moves explicitly."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _clean_solis_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all SOLIS_* env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_SOLIS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for ChargerSettings."""
    env = {
        "SOLIS_API_URL": "https://www.soliscloud.com:13333/",
        "SOLIS_KEY_ID": "1300386381676000000",
        "SOLIS_KEY_SECRET": "304abf2bd8a44128b3f2c4e1f1a6b7c8",
        "SOLIS_INVERTER_SN": "1031234567890123",
        "SOLIS_GRID_CHARGING_DELAY": "300",
        "SOLIS_MIN_BATTERY_PERCENT": "80",
        "SOLIS_MAX_BATTERY_PERCENT": "97.5",
        "SOLIS_POLL_INTERVAL_S": "60",
        "SOLIS_REQUEST_TIMEOUT_S": "5",
        "SOLIS_LOG_LEVEL": "debug",
        "SOLIS_HEALTH_PATH": "/tmp/charger-health.json",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {
        "SOLIS_API_URL": "https://www.soliscloud.com:13333",
        "SOLIS_KEY_ID": "key-id",
        "SOLIS_KEY_SECRET": "key-secret",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def policy() -> PolicyConfig:
    """Policy used by the state machine and loop tests."""
    return PolicyConfig(
        grid_charging_delay=timedelta(seconds=300),
        min_battery_percent=90.0,
        max_battery_percent=95.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
