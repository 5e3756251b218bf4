"""
Controller configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All values come from ``SOLIS_*`` environment variables or a ``.env`` file;
no credentials or device serials are hardcoded.

The charging policy (delay and battery thresholds) is frozen into a
:class:`PolicyConfig` once at startup and never changes while the process runs.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from charger.src.errors import ConfigurationError

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Immutable charging policy.

    Attributes:
        grid_charging_delay: How long the grid must be continuously present
            before charging from it is allowed.
        min_battery_percent: Below this level charging is (re-)enabled.
        max_battery_percent: At or above this level charging is disabled.
    """

    grid_charging_delay: timedelta
    min_battery_percent: float
    max_battery_percent: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_battery_percent <= self.max_battery_percent <= 100.0:
            raise ConfigurationError(
                "Battery thresholds must satisfy 0 <= min <= max <= 100 "
                f"(got min={self.min_battery_percent}, max={self.max_battery_percent})"
            )
        if self.grid_charging_delay < timedelta(0):
            raise ConfigurationError("Grid charging delay must not be negative")


class ChargerSettings(BaseSettings):
    """Controller configuration.

    Attributes:
        api_url: SolisCloud API base URL, without trailing slash.
        key_id: API key id, sent in the ``Authorization`` header.
        key_secret: API key secret used to sign every request.
        inverter_sn: Serial number of the controlled inverter. When unset the
            process lists the account's inverters and exits.
        grid_charging_delay: Seconds the grid must be present before charging.
        min_battery_percent: Lower hysteresis threshold.
        max_battery_percent: Upper hysteresis threshold (charge ceiling).
        poll_interval_s: Seconds between control ticks (min 5).
        request_timeout_s: Per-request HTTP timeout in seconds.
        log_level: Root log level name.
        health_path: Optional path of a JSON health file rewritten each tick.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_url: str
    key_id: str
    key_secret: str
    inverter_sn: str | None = None
    grid_charging_delay: int = 600
    min_battery_percent: float = 90.0
    max_battery_percent: float = 95.0
    poll_interval_s: float = 30.0
    request_timeout_s: float = 15.0
    log_level: str = "INFO"
    health_path: str | None = None

    @field_validator("api_url")
    @classmethod
    def api_url_must_be_http(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.lower().startswith(("https://", "http://")):
            raise ValueError(f"SOLIS_API_URL must be an http(s) URL (got: '{v}')")
        return v.rstrip("/")

    @field_validator("key_id", "key_secret")
    @classmethod
    def credentials_must_be_present(cls, v: str) -> str:
        """Reject blank API credentials."""
        if not v.strip():
            raise ValueError("API credentials must not be empty")
        return v

    @field_validator("inverter_sn")
    @classmethod
    def blank_serial_is_unset(cls, v: str | None) -> str | None:
        """Treat an empty SOLIS_INVERTER_SN as not configured."""
        if v is None:
            return None
        return v.strip() or None

    @field_validator("grid_charging_delay")
    @classmethod
    def delay_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("SOLIS_GRID_CHARGING_DELAY must be >= 0")
        return v

    @field_validator("min_battery_percent", "max_battery_percent")
    @classmethod
    def percent_must_be_in_range(cls, v: float) -> float:
        if v < 0.0 or v > 100.0:
            raise ValueError("Battery percentages must be between 0 and 100")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_reasonable(cls, v: float) -> float:
        """Keep at least 5 seconds between ticks; the vendor API rate-limits."""
        if v < 5:
            raise ValueError("SOLIS_POLL_INTERVAL_S must be >= 5")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SOLIS_REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"SOLIS_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "ChargerSettings":
        """Validate min <= max for the hysteresis band."""
        if self.min_battery_percent > self.max_battery_percent:
            raise ValueError(
                "SOLIS_MIN_BATTERY_PERCENT must be <= SOLIS_MAX_BATTERY_PERCENT"
            )
        return self

    def policy(self) -> PolicyConfig:
        """Freeze the charging policy values into a :class:`PolicyConfig`."""
        return PolicyConfig(
            grid_charging_delay=timedelta(seconds=self.grid_charging_delay),
            min_battery_percent=self.min_battery_percent,
            max_battery_percent=self.max_battery_percent,
        )


def load_settings(**overrides: object) -> ChargerSettings:
    """Load settings from the environment, failing fast on invalid values.

    Args:
        **overrides: Field values that take precedence over the environment.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If any value is missing or invalid.
    """
    try:
        return ChargerSettings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
