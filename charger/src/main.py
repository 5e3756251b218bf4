"""
Controller daemon entrypoint.

Loads configuration, sets up structured JSON logging, and either:

1. **Lists inverters** when no ``SOLIS_INVERTER_SN`` is configured, printing
   ``ID: {id}, SN: {sn}`` for each inverter on the account and exiting with
   code 2 (code 1 if the listing fails), or
2. **Runs the control loop** for the configured inverter until SIGTERM/SIGINT,
   then exits with code 0.

A :class:`~charger.src.errors.ConfigurationError`, at startup or while
running, is fatal and exits with code 1.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from charger.src.client import SolisClient
from charger.src.config import ChargerSettings, load_settings
from charger.src.errors import ConfigurationError, SolisError
from charger.src.health import HealthWriter
from charger.src.loop import ControlLoop

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NO_INVERTER = 2


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """JSON log formatter.

    Besides the standard fields, records logged with
    ``extra={"event": ..., "fields": {...}}`` carry those keys through.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            log_entry["event"] = event
        fields = getattr(record, "fields", None)
        if fields:
            log_entry["fields"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stderr.

    Args:
        level: Root log level name.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # httpx logs every request at INFO; our client logs exchanges at DEBUG.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_config_summary(settings: ChargerSettings) -> None:
    """Log a config summary at startup, excluding the key secret."""
    logger.info(
        "Controller starting with config: "
        "api_url=%s, key_id=%s, inverter_sn=%s, grid_charging_delay=%ss, "
        "min_battery_percent=%s, max_battery_percent=%s, "
        "poll_interval_s=%s, request_timeout_s=%s, health_path=%s",
        settings.api_url,
        settings.key_id,
        settings.inverter_sn,
        settings.grid_charging_delay,
        settings.min_battery_percent,
        settings.max_battery_percent,
        settings.poll_interval_s,
        settings.request_timeout_s,
        settings.health_path,
    )


# ---------------------------------------------------------------------------
# Operator convenience: list inverters
# ---------------------------------------------------------------------------


async def list_inverters(client: SolisClient) -> int:
    """Print the account's inverters so the operator can pick a serial.

    Returns:
        The process exit code.
    """
    print("SOLIS_INVERTER_SN is not set; here are the inverters:")
    try:
        inverters = await client.list_inverters()
    except SolisError as exc:
        print(f"error: {exc}")
        return EXIT_FAILURE
    for inverter in inverters:
        print(f"ID: {inverter.id}, SN: {inverter.serial_number}")
    return EXIT_NO_INVERTER


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _install_signal_handlers(control: ControlLoop) -> None:
    """Route SIGTERM/SIGINT to a graceful stop of the control loop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, control)


def _handle_signal(control: ControlLoop) -> None:
    """Handle SIGTERM/SIGINT by requesting a graceful stop.

    Args:
        control: The running control loop.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    control.request_stop()


async def async_main() -> int:
    """Async entrypoint: load config, build components, run the loop.

    Returns:
        The process exit code.
    """
    configure_logging()
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        return EXIT_FAILURE

    configure_logging(settings.log_level)
    log_config_summary(settings)

    async with SolisClient(
        api_url=settings.api_url,
        key_id=settings.key_id,
        key_secret=settings.key_secret,
        timeout_s=settings.request_timeout_s,
    ) as client:
        if settings.inverter_sn is None:
            return await list_inverters(client)

        health = HealthWriter(settings.health_path) if settings.health_path else None
        control = ControlLoop(
            client=client,
            serial_number=settings.inverter_sn,
            policy=settings.policy(),
            poll_interval_s=settings.poll_interval_s,
            health=health,
        )
        _install_signal_handlers(control)

        try:
            await control.run()
        except ConfigurationError:
            return EXIT_FAILURE

    logger.info("Shutdown complete")
    return EXIT_OK


def main() -> None:
    """Synchronous entrypoint for the controller daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
