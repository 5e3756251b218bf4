"""
Pure control state machine for grid charging.

Maps (previous state, telemetry snapshot, policy, now) to the next
:class:`ControlState`.  No side effects, no I/O, no clock: the current time
is injected so every transition can be tested in isolation.

The decision combines four conditions:

1. Grid present: the grid voltage is above a noise margin.
2. Debounce: the grid has been present for longer than the configured delay
   since its last off-to-on transition.
3. Ceiling: the battery is below the max threshold.
4. Hysteresis: charging was already allowed, or the battery dropped below the
   min threshold.  Between min and max the previous decision is kept.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from charger.src.config import PolicyConfig
    from charger.src.models import TelemetrySnapshot

GRID_VOLTAGE_THRESHOLD_V: float = 2.0
"""Voltages at or below this are sensor noise, not a live grid."""


@dataclass(frozen=True, slots=True)
class ControlState:
    """Controller state carried from one tick to the next.

    Attributes:
        grid_active: Grid voltage was above the threshold on the last tick.
        allow_grid_charging: Current charging decision.
        last_grid_switch_on_time: Start of the current grid-present interval
            (the debounce anchor).
    """

    grid_active: bool
    allow_grid_charging: bool
    last_grid_switch_on_time: datetime


def initial_state(policy: PolicyConfig, now: datetime) -> ControlState:
    """Return the startup state.

    The switch-on time is placed just outside the debounce window so the
    first tick is not held back by it.
    """
    return ControlState(
        grid_active=True,
        allow_grid_charging=True,
        last_grid_switch_on_time=now - policy.grid_charging_delay - timedelta(seconds=1),
    )


def transition(
    previous: ControlState,
    telemetry: TelemetrySnapshot,
    policy: PolicyConfig,
    now: datetime,
) -> ControlState:
    """Compute the next control state from one telemetry snapshot."""
    grid_active = telemetry.grid_voltage > GRID_VOLTAGE_THRESHOLD_V

    # Rising edge only; the anchor survives while the grid stays on or off.
    if grid_active and not previous.grid_active:
        switch_on_time = now
    else:
        switch_on_time = previous.last_grid_switch_on_time

    allow_grid_charging = (
        grid_active
        and now > switch_on_time + policy.grid_charging_delay
        and telemetry.battery_percent < policy.max_battery_percent
        and (
            previous.allow_grid_charging
            or telemetry.battery_percent < policy.min_battery_percent
        )
    )

    return ControlState(
        grid_active=grid_active,
        allow_grid_charging=allow_grid_charging,
        last_grid_switch_on_time=switch_on_time,
    )
