"""
Async SolisCloud API client.

Performs one signed JSON POST per call (see :mod:`charger.src.signing`),
unwraps the ``{code, msg, data}`` response envelope, and maps failures onto
the controller's error taxonomy:

- Connection errors, timeouts, undecodable or non-JSON bodies and payloads
  that do not match the expected schema raise
  :class:`~charger.src.errors.TransportError`.
- An envelope with ``code != "0"`` raises
  :class:`~charger.src.errors.RemoteApiError`, whatever the HTTP status.
- An offline inverter raises :class:`~charger.src.errors.DeviceUnreachable`.
- A parameter read that requires the polling protocol raises
  :class:`~charger.src.errors.UnsupportedResponseShape`.

Operations:
- list_inverters(): First page of the account's inverters.
- get_telemetry(sn): Current state, battery level and grid voltage.
- read_parameter(sn, command): Current value text plus write token.
- write_parameter(sn, command, value, token): Set a control parameter.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from charger.src.errors import (
    DeviceUnreachable,
    RemoteApiError,
    TransportError,
    UnsupportedResponseShape,
)
from charger.src.models import (
    Envelope,
    InverterBrief,
    InverterCommand,
    InverterPage,
    InverterState,
    ParameterReading,
    TelemetrySnapshot,
)
from charger.src.signing import sign_request

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INVERTER_LIST_PATH = "/v1/api/inverterList"
INVERTER_DETAIL_PATH = "/v1/api/inverterDetail"
PARAMETER_READ_PATH = "/v2/api/atRead"
PARAMETER_WRITE_PATH = "/v2/api/control"

LIST_PAGE_SIZE = 10
"""Inverters fetched by :meth:`SolisClient.list_inverters` (first page only)."""

_MAX_LOGGED_RESPONSE_CHARS = 1000

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SolisClient:
    """Signed client for the SolisCloud platform API.

    Use as an async context manager so the underlying connection pool is
    closed on exit::

        async with SolisClient(api_url=..., key_id=..., key_secret=...) as api:
            snapshot = await api.get_telemetry("1234567890")

    Args:
        api_url: API base URL (scheme, host and optional port).
        key_id: API key id.
        key_secret: API key secret used for request signatures.
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
        clock: Returns the timezone-aware time used to date each request.
    """

    def __init__(
        self,
        *,
        api_url: str,
        key_id: str,
        key_secret: str,
        timeout_s: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._key_id = key_id
        self._key_secret = key_secret
        self._clock = clock
        self._http = httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> SolisClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_inverters(self) -> list[InverterBrief]:
        """Return the first page of inverters registered on the account."""
        data = await self._request(
            INVERTER_LIST_PATH,
            {"pageNo": 1, "pageSize": LIST_PAGE_SIZE},
        )
        page = self._parse(InverterPage, data, INVERTER_LIST_PATH)
        return list(page.page.records)

    async def get_telemetry(self, serial_number: str) -> TelemetrySnapshot:
        """Fetch the current detail of one inverter.

        Raises:
            DeviceUnreachable: The inverter reports state ``OFFLINE``.
        """
        data = await self._request(INVERTER_DETAIL_PATH, {"sn": serial_number})
        snapshot = self._parse(TelemetrySnapshot, data, INVERTER_DETAIL_PATH)
        if snapshot.state is InverterState.OFFLINE:
            raise DeviceUnreachable(f"Inverter {serial_number} is offline")
        return snapshot

    async def read_parameter(
        self,
        serial_number: str,
        command: InverterCommand,
    ) -> ParameterReading:
        """Read the current value of a control parameter.

        Raises:
            UnsupportedResponseShape: The API answered with ``needLoop``.
        """
        data = await self._request(
            PARAMETER_READ_PATH,
            {"inverterSn": serial_number, "cid": int(command)},
        )
        reading = self._parse(ParameterReading, data, PARAMETER_READ_PATH)
        if reading.need_loop:
            raise UnsupportedResponseShape(
                f"Reading {command.name} on {serial_number} requires the "
                "looping read protocol, which is not supported"
            )
        return reading

    async def write_parameter(
        self,
        serial_number: str,
        command: InverterCommand,
        value: str,
        token: str,
    ) -> None:
        """Write a control parameter.

        Success is judged from the envelope code only; the new value is not
        read back.
        """
        await self._request(
            PARAMETER_WRITE_PATH,
            {
                "inverterSn": serial_number,
                "cid": int(command),
                "value": value,
                "yuanzhi": token,
            },
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(self, path: str, payload: dict[str, Any]) -> Any:
        """Sign and POST *payload* to *path*, returning the envelope's data."""
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        logger.debug("Request %s with body: %s", path, body.decode("utf-8"))
        signed = sign_request(
            path=path,
            body=body,
            key_id=self._key_id,
            key_secret=self._key_secret,
            now=self._clock(),
        )

        try:
            response = await self._http.post(
                path,
                content=signed.body,
                headers=signed.headers(),
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"{path}: request timed out") from exc
        except httpx.HTTPError as exc:
            # Also covers DecodingError and TooManyRedirects.
            raise TransportError(f"{path}: {exc}") from exc

        text = response.text
        logger.debug(
            "Response %s (HTTP %d): %s",
            path,
            response.status_code,
            text if len(text) <= _MAX_LOGGED_RESPONSE_CHARS else "...",
        )

        try:
            raw = response.json()
        except ValueError as exc:
            raise TransportError(
                f"{path}: non-JSON response (HTTP {response.status_code})"
            ) from exc

        try:
            envelope = Envelope.model_validate(raw)
        except ValidationError as exc:
            raise TransportError(
                f"{path}: unexpected response envelope (HTTP {response.status_code})"
            ) from exc

        if not envelope.ok:
            raise RemoteApiError(envelope.code, envelope.msg or "unknown error")
        return envelope.data

    @staticmethod
    def _parse(model: type[_ModelT], data: Any, path: str) -> _ModelT:
        """Validate an envelope's ``data`` against *model*."""
        if data is None:
            raise TransportError(f"{path}: success response carried no data")
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise TransportError(f"{path}: malformed payload: {exc}") from exc
