"""Exception taxonomy for the ADE Gateway."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for gateway errors."""


# ── Process bridge ────────────────────────────────────────────────────────


class SpawnError(GatewayError):
    """The Claude Code executable could not be launched."""


class AlreadyRunningError(GatewayError):
    """An execution is already in flight on this bridge."""

    def __init__(self) -> None:
        super().__init__("A command is already running. Wait for it to complete or cancel it.")


class BridgeTimeoutError(GatewayError):
    """The process did not exit within its allotted time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Command timed out after {timeout:g}s")
        self.timeout = timeout


class ProcessExitError(GatewayError):
    """The process exited with a non-zero code."""

    def __init__(self, code: int | None, detail: str) -> None:
        super().__init__(f"Claude Code exited with code {code}: {detail}")
        self.code = code
        self.detail = detail


# ── Jobs ──────────────────────────────────────────────────────────────────


class InvalidTransitionError(GatewayError):
    """A job was asked to move between states the lifecycle does not allow."""


# ── Translation service ───────────────────────────────────────────────────


class TranslationServiceError(GatewayError):
    """The translation service returned an error or an empty response."""


class CommandParseError(GatewayError):
    """A translation response could not be parsed into an ADE command."""
