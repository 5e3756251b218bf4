"""
Pydantic models for SolisCloud wire payloads.

Defines the response envelope shared by every endpoint, the inverter listing
and detail payloads, and the parameter read result.  Field aliases follow the
API's camelCase keys; Python attributes use snake_case.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InverterState(IntEnum):
    """Device state reported by the inverter detail endpoint."""

    ONLINE = 1
    OFFLINE = 2
    ALERT = 3


class InverterCommand(IntEnum):
    """Remote control command ids (``cid``) accepted by atRead/control."""

    TIME = 56
    ALLOW_GRID_CHARGING = 109


class Envelope(BaseModel):
    """Outer ``{code, msg, data}`` wrapper around every API response.

    ``code == "0"`` means success regardless of the HTTP status.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    code: str
    msg: str | None = None
    data: Any | None = None

    @property
    def ok(self) -> bool:
        return self.code == "0"


class InverterBrief(BaseModel):
    """One row of the inverter listing."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, coerce_numbers_to_str=True
    )

    id: str
    serial_number: str = Field(alias="sn")


class _Page(BaseModel):
    records: list[InverterBrief] = Field(default_factory=list)


class InverterPage(BaseModel):
    """``data`` payload of the paginated inverter listing."""

    page: _Page


class TelemetrySnapshot(BaseModel):
    """Current inverter readings used by one control tick.

    Attributes:
        state: Online / offline / alert.
        battery_percent: Battery state of charge (0-100).
        grid_voltage: AC grid phase 1 voltage in volts.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    state: InverterState
    battery_percent: float = Field(alias="batteryPercent", ge=0.0, le=100.0)
    grid_voltage: float = Field(alias="uAc1", ge=0.0)


class ParameterReading(BaseModel):
    """Result of an atRead call.

    ``token`` (the vendor's ``yuanzhi``) must accompany exactly one following
    write of the same parameter and is never stored beyond that.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    current_value: str = Field(alias="msg")
    token: str = Field(alias="yuanzhi")
    need_loop: bool = Field(default=False, alias="needLoop")
