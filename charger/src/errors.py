"""
Exception hierarchy for the grid-charging controller.

Every failure the controller can observe derives from :class:`SolisError`.
The poll loop recovers from all of them at the tick boundary except
:class:`ConfigurationError`, which is fatal and ends the process.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations


class SolisError(Exception):
    """Base class for all controller errors."""


class ConfigurationError(SolisError):
    """Invalid or missing credentials, policy bounds, or signing inputs."""


class TransportError(SolisError):
    """Network failure, timeout, or a response body that cannot be decoded."""


class RemoteApiError(SolisError):
    """The vendor API answered with a non-success envelope code.

    Args:
        code: Envelope ``code`` field as sent by the API.
        message: Envelope ``msg`` field, or ``"unknown error"`` when absent.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.message} (code={self.code})"


class DeviceUnreachable(SolisError):
    """The inverter reports itself offline; its readings cannot be trusted."""


class UnsupportedResponseShape(SolisError):
    """The API asked for a polling follow-up protocol that is not implemented."""
