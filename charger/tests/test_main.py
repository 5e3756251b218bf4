"""
Unit tests for the controller entrypoint.

Tests verify:
- JSON log lines carry event/fields extras and exceptions.
- Startup logs a config summary without the key secret.
- Without an inverter serial the inverters are listed and the exit code is 2
  (1 if listing fails, including an undecodable response).
- Invalid configuration exits with code 1 before any API call.
- A configured serial runs the control loop; a clean stop exits with 0 and a
  fatal ConfigurationError with 1.
- The signal handler requests a graceful stop.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from charger.src.client import SolisClient
from charger.src.errors import ConfigurationError, RemoteApiError
from charger.src.main import (
    EXIT_FAILURE,
    EXIT_NO_INVERTER,
    EXIT_OK,
    JsonFormatter,
    _handle_signal,
    async_main,
    list_inverters,
    log_config_summary,
)
from charger.src.models import InverterBrief

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """async_main() reconfigures the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _make_client() -> AsyncMock:
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.list_inverters = AsyncMock(
        return_value=[
            InverterBrief(id="111", serial_number="SN-A"),
            InverterBrief(id="222", serial_number="SN-B"),
        ]
    )
    return client


def _make_settings(**overrides: object) -> MagicMock:
    """Create a mock ChargerSettings with sensible defaults."""
    defaults = {
        "api_url": "https://www.soliscloud.com:13333",
        "key_id": "key-id",
        "key_secret": "super-secret-value",
        "inverter_sn": "SN-A",
        "grid_charging_delay": 600,
        "min_battery_percent": 90.0,
        "max_battery_percent": 95.0,
        "poll_interval_s": 30.0,
        "request_timeout_s": 15.0,
        "health_path": None,
    }
    defaults.update(overrides)
    settings = MagicMock()
    for key, value in defaults.items():
        setattr(settings, key, value)
    return settings


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def test_includes_event_and_fields(self) -> None:
        record = logging.LogRecord(
            "charger.src.loop", logging.INFO, __file__, 1, "Telemetry %s", ("ok",), None
        )
        record.event = "telemetry"
        record.fields = {"battery_percent": 50.0}

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "charger.src.loop"
        assert entry["msg"] == "Telemetry ok"
        assert entry["event"] == "telemetry"
        assert entry["fields"] == {"battery_percent": 50.0}

    def test_plain_record_has_no_extras(self) -> None:
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "plain", (), None)

        entry = json.loads(JsonFormatter().format(record))

        assert "event" not in entry
        assert "fields" not in entry

    def test_includes_exception(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), exc_info)

        entry = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad" in entry["exception"]


class TestConfigSummary:
    def test_secret_not_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = _make_settings()

        with caplog.at_level(logging.INFO, logger="charger.src.main"):
            log_config_summary(settings)

        text = caplog.text
        assert "SN-A" in text
        assert "key-id" in text
        assert "super-secret-value" not in text


# ---------------------------------------------------------------------------
# Listing inverters
# ---------------------------------------------------------------------------


class TestListInverters:
    @pytest.mark.asyncio
    async def test_prints_inverters(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = await list_inverters(_make_client())

        out = capsys.readouterr().out
        assert code == EXIT_NO_INVERTER
        assert "ID: 111, SN: SN-A" in out
        assert "ID: 222, SN: SN-B" in out

    @pytest.mark.asyncio
    async def test_listing_failure(self, capsys: pytest.CaptureFixture[str]) -> None:
        client = _make_client()
        client.list_inverters = AsyncMock(side_effect=RemoteApiError("B1", "bad key"))

        code = await list_inverters(client)

        assert code == EXIT_FAILURE
        assert "bad key" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_undecodable_response(self, capsys: pytest.CaptureFixture[str]) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(b"not-gzip"),
            )

        async with SolisClient(
            api_url="https://api.example.com:13333",
            key_id="key-id",
            key_secret="key-secret",
            transport=httpx.MockTransport(_handler),
        ) as client:
            code = await list_inverters(client)

        assert code == EXIT_FAILURE
        assert "error: /v1/api/inverterList" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# async_main
# ---------------------------------------------------------------------------


class TestAsyncMain:
    @pytest.mark.asyncio
    async def test_invalid_config_exits_1(self) -> None:
        with patch("charger.src.main.SolisClient") as client_cls:
            code = await async_main()

        assert code == EXIT_FAILURE
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_serial_lists_inverters(
        self,
        env_vars_required_only: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        client = _make_client()

        with patch("charger.src.main.SolisClient", return_value=client) as client_cls:
            code = await async_main()

        assert code == EXIT_NO_INVERTER
        assert client_cls.call_args.kwargs["api_url"] == "https://www.soliscloud.com:13333"
        assert "SN: SN-A" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_runs_control_loop(self, env_vars_full: dict[str, str]) -> None:
        client = _make_client()
        control = MagicMock()
        control.run = AsyncMock(return_value=None)

        with (
            patch("charger.src.main.SolisClient", return_value=client),
            patch("charger.src.main.ControlLoop", return_value=control) as loop_cls,
            patch("charger.src.main._install_signal_handlers") as install,
        ):
            code = await async_main()

        assert code == EXIT_OK
        kwargs = loop_cls.call_args.kwargs
        assert kwargs["serial_number"] == env_vars_full["SOLIS_INVERTER_SN"]
        assert kwargs["poll_interval_s"] == 60.0
        assert kwargs["health"] is not None
        install.assert_called_once_with(control)
        control.run.assert_awaited_once()
        client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fatal_error_exits_1(self, env_vars_full: dict[str, str]) -> None:
        client = _make_client()
        control = MagicMock()
        control.run = AsyncMock(side_effect=ConfigurationError("empty secret"))

        with (
            patch("charger.src.main.SolisClient", return_value=client),
            patch("charger.src.main.ControlLoop", return_value=control),
            patch("charger.src.main._install_signal_handlers"),
        ):
            code = await async_main()

        assert code == EXIT_FAILURE
        client.__aexit__.assert_awaited_once()


class TestSignalHandler:
    def test_requests_stop(self) -> None:
        control = MagicMock()

        _handle_signal(control)

        control.request_stop.assert_called_once_with()
