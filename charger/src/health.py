"""
Health file writer for the controller daemon.

Writes a JSON health file at a configurable path with these fields:
- last_tick_ts: ISO timestamp of the most recent control tick.
- last_success_ts: ISO timestamp of the most recent tick that fetched telemetry.
- last_write_ts: ISO timestamp of the most recent parameter write.
- grid_active / allow_grid_charging: Current in-memory control state.
- consecutive_failures: Ticks in a row that failed to fetch telemetry.

The file is rewritten after every tick, giving Docker HEALTHCHECK or an
external monitor a simple liveness signal.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


class HealthWriter:
    """Writes controller health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_tick_ts: str | None = None
        self._last_success_ts: str | None = None
        self._last_write_ts: str | None = None
        self._grid_active: bool | None = None
        self._allow_grid_charging: bool | None = None
        self._consecutive_failures: int = 0

    def record_tick(
        self,
        *,
        success: bool,
        grid_active: bool,
        allow_grid_charging: bool,
    ) -> None:
        """Record the outcome of one tick and write the health file.

        Args:
            success: Whether telemetry was fetched on this tick.
            grid_active: Grid flag of the state kept after the tick.
            allow_grid_charging: Decision of the state kept after the tick.
        """
        now = _now_iso()
        self._last_tick_ts = now
        if success:
            self._last_success_ts = now
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        self._grid_active = grid_active
        self._allow_grid_charging = allow_grid_charging
        self._write()

    def record_write(self) -> None:
        """Record a parameter write (written with the next tick)."""
        self._last_write_ts = _now_iso()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_tick_ts": self._last_tick_ts,
            "last_success_ts": self._last_success_ts,
            "last_write_ts": self._last_write_ts,
            "grid_active": self._grid_active,
            "allow_grid_charging": self._allow_grid_charging,
            "consecutive_failures": self._consecutive_failures,
        }
        self.path.write_text(json.dumps(data))
