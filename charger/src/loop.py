"""
Control loop driving the grid-charging policy.

Each tick fetches telemetry, runs the pure state machine from
:mod:`charger.src.state`, and pushes the "allow grid charging" parameter to
the inverter when the decision changes.  Ticks run strictly one after
another; between ticks the loop waits on a shutdown event with a timeout, so
a stop request is honoured only at a tick boundary and never interrupts an
HTTP exchange.

Per-tick failures are logged and never escape the tick:

- Telemetry fetch failure: the control state is left unchanged.
- Parameter write failure: the new grid/debounce bookkeeping is adopted but
  the previous charging decision is kept, so the write is retried on the next
  tick for as long as the decision still differs. The kept decision is
  logged as a ``decision_kept`` event.

:class:`~charger.src.errors.ConfigurationError` is the exception: it is fatal
and propagates out of :meth:`ControlLoop.run`.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from charger.src.errors import (
    ConfigurationError,
    SolisError,
    UnsupportedResponseShape,
)
from charger.src.models import InverterCommand
from charger.src.parameters import update_parameter_if_needed
from charger.src.state import ControlState, initial_state, transition

if TYPE_CHECKING:
    from charger.src.client import SolisClient
    from charger.src.config import PolicyConfig
    from charger.src.health import HealthWriter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def charging_value(allow: bool) -> str:
    """Encode a charging decision as the parameter's value text."""
    return "1" if allow else "0"


class LoopPhase(StrEnum):
    """Lifecycle of a :class:`ControlLoop`."""

    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ControlLoop:
    """Owns the live :class:`ControlState` and runs the control ticks.

    Args:
        client: SolisCloud API client.
        serial_number: Serial of the controlled inverter.
        policy: Charging policy.
        poll_interval_s: Seconds to wait between ticks.
        health: Optional health file writer, updated after every tick.
        clock: Returns the current timezone-aware time.
    """

    def __init__(
        self,
        *,
        client: SolisClient,
        serial_number: str,
        policy: PolicyConfig,
        poll_interval_s: float,
        health: HealthWriter | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._serial_number = serial_number
        self._policy = policy
        self._poll_interval_s = poll_interval_s
        self._health = health
        self._clock = clock
        self._state = initial_state(policy, clock())
        self._shutdown_event = asyncio.Event()
        self.phase = LoopPhase.STARTING
        self.exit_error: BaseException | None = None

    @property
    def state(self) -> ControlState:
        """The control state kept after the most recent tick."""
        return self._state

    @property
    def stopped_cleanly(self) -> bool:
        """True once the loop has stopped without an escaping exception."""
        return self.phase is LoopPhase.STOPPED and self.exit_error is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the loop to stop after the tick in progress (if any)."""
        if self.phase in (LoopPhase.STARTING, LoopPhase.RUNNING):
            logger.info("Graceful stop requested")
            self.phase = LoopPhase.SHUTTING_DOWN
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run ticks every ``poll_interval_s`` seconds until stopped.

        Any exception escaping the loop is stored in ``exit_error`` before it
        propagates.

        Raises:
            ConfigurationError: A fatal configuration problem surfaced while
                running; the loop is stopped and ``exit_error`` is set.
        """
        if self.phase is LoopPhase.STARTING:
            self.phase = LoopPhase.RUNNING
        logger.info(
            "Control loop started (inverter=%s, interval=%ss)",
            self._serial_number,
            self._poll_interval_s,
        )
        try:
            while not self._shutdown_event.is_set():
                await self.run_once()
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._poll_interval_s,
                    )
        except ConfigurationError as exc:
            self.exit_error = exc
            logger.critical("Fatal configuration error, stopping: %s", exc)
            raise
        except BaseException as exc:
            self.exit_error = exc
            raise
        finally:
            self.phase = LoopPhase.STOPPED
            logger.info("Control loop stopped")

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------

    async def run_once(self) -> ControlState:
        """Execute one fetch-decide-act tick and return the kept state."""
        previous = self._state

        try:
            telemetry = await self._client.get_telemetry(self._serial_number)
        except ConfigurationError:
            raise
        except SolisError as exc:
            self._log_failure("get_telemetry", exc)
            self._record_tick(success=False)
            return previous
        except Exception:
            logger.error(
                "Unexpected error fetching telemetry for inverter %s",
                self._serial_number,
                exc_info=True,
            )
            self._record_tick(success=False)
            return previous

        logger.info(
            "Telemetry: state=%s battery=%.1f%% grid=%.1fV",
            telemetry.state.name,
            telemetry.battery_percent,
            telemetry.grid_voltage,
            extra={
                "event": "telemetry",
                "fields": {
                    "inverter": self._serial_number,
                    "state": telemetry.state.name,
                    "battery_percent": telemetry.battery_percent,
                    "grid_voltage": telemetry.grid_voltage,
                },
            },
        )

        new_state = transition(previous, telemetry, self._policy, self._clock())
        logger.info(
            "State: grid_active=%s allow_grid_charging=%s switch_on=%s",
            new_state.grid_active,
            new_state.allow_grid_charging,
            new_state.last_grid_switch_on_time.isoformat(),
            extra={
                "event": "transition",
                "fields": {
                    "grid_active": new_state.grid_active,
                    "allow_grid_charging": new_state.allow_grid_charging,
                    "previous_allow_grid_charging": previous.allow_grid_charging,
                    "last_grid_switch_on_time": new_state.last_grid_switch_on_time.isoformat(),
                },
            },
        )

        if new_state.allow_grid_charging != previous.allow_grid_charging:
            if not await self._apply_decision(new_state.allow_grid_charging):
                new_state = replace(
                    new_state,
                    allow_grid_charging=previous.allow_grid_charging,
                )
                logger.warning(
                    "Update failed, keeping allow_grid_charging=%s until next tick",
                    new_state.allow_grid_charging,
                    extra={
                        "event": "decision_kept",
                        "fields": {
                            "inverter": self._serial_number,
                            "allow_grid_charging": new_state.allow_grid_charging,
                        },
                    },
                )

        self._state = new_state
        self._record_tick(success=True)
        return new_state

    async def _apply_decision(self, allow: bool) -> bool:
        """Push the decision to the inverter. Returns False if the update failed."""
        value = charging_value(allow)
        logger.info("Updating allow_grid_charging to %s", value)
        try:
            written = await update_parameter_if_needed(
                self._client,
                self._serial_number,
                InverterCommand.ALLOW_GRID_CHARGING,
                value,
            )
        except ConfigurationError:
            raise
        except SolisError as exc:
            self._log_failure("update_parameter", exc)
            return False
        except Exception:
            logger.error(
                "Unexpected error updating allow_grid_charging on inverter %s",
                self._serial_number,
                exc_info=True,
            )
            return False

        if written and self._health is not None:
            self._health.record_write()
        return True

    def _log_failure(self, operation: str, exc: SolisError) -> None:
        # A looping read is a capability gap, not a transient failure.
        level = logging.ERROR if isinstance(exc, UnsupportedResponseShape) else logging.WARNING
        logger.log(
            level,
            "%s failed for inverter %s: %s: %s",
            operation,
            self._serial_number,
            type(exc).__name__,
            exc,
            extra={
                "event": "tick_failed",
                "fields": {
                    "operation": operation,
                    "inverter": self._serial_number,
                    "error": type(exc).__name__,
                },
            },
        )

    def _record_tick(self, *, success: bool) -> None:
        if self._health is None:
            return
        try:
            self._health.record_tick(
                success=success,
                grid_active=self._state.grid_active,
                allow_grid_charging=self._state.allow_grid_charging,
            )
        except OSError:
            logger.warning("Failed to write health file", exc_info=True)
