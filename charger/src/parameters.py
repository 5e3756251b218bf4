"""
Read-before-write update of remote control parameters.

The vendor API rate-limits and audits every control write, so a parameter is
only written when its current remote value differs from the desired one.  The
write must carry the token returned by the read that preceded it.

This is not an atomic compare-and-set: the remote value could change between
the read and the write.  The controller is the only writer and writes are
rare (only when its decision flips), so the window is accepted.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from charger.src.client import SolisClient
    from charger.src.models import InverterCommand

logger = logging.getLogger(__name__)


async def update_parameter_if_needed(
    client: SolisClient,
    serial_number: str,
    command: InverterCommand,
    desired_value: str,
) -> bool:
    """Write *desired_value* unless the parameter already holds it.

    Args:
        client: API client used for the read and the optional write.
        serial_number: Target inverter serial.
        command: Parameter to update.
        desired_value: Value text to enforce (e.g. ``"1"`` or ``"0"``).

    Returns:
        ``True`` if a write was issued, ``False`` if the remote value already
        matched and nothing was written.

    Raises:
        SolisError: Any failure of the read or the write propagates unchanged.
    """
    reading = await client.read_parameter(serial_number, command)

    if reading.current_value == desired_value:
        logger.info(
            "Parameter %s on %s already %r, skipping write",
            command.name,
            serial_number,
            desired_value,
            extra={
                "event": "parameter_write_skipped",
                "fields": {"command": command.name, "value": desired_value},
            },
        )
        return False

    logger.info(
        "Writing parameter %s on %s: %r -> %r",
        command.name,
        serial_number,
        reading.current_value,
        desired_value,
        extra={
            "event": "parameter_write",
            "fields": {
                "command": command.name,
                "previous": reading.current_value,
                "value": desired_value,
            },
        },
    )
    await client.write_parameter(serial_number, command, desired_value, reading.token)
    return True
