"""Error taxonomy shared by the reconciliation engine."""

from __future__ import annotations


class TunnelSyncError(Exception):
    """Base class for all tunnelsync errors."""


class MalformedCIDR(TunnelSyncError, ValueError):
    """A route or address string failed to parse."""

    def __init__(self, text: str, detail: str = "") -> None:
        self.text = text
        message = f"Malformed CIDR: {text!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NotReady(TunnelSyncError):
    """No usable tunnel address could be resolved yet."""


class ApplyFailed(TunnelSyncError):
    """The OS-level settings apply call failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to apply network settings: {reason}")


class RebindFailed(TunnelSyncError):
    """Re-binding the data-path handle failed after a successful apply."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to rebind tunnel handle: {reason}")


class StillInProgress(TunnelSyncError):
    """A reconciliation cycle is already running."""

    def __init__(self) -> None:
        super().__init__("Reconciliation still in progress")


class LogExportError(TunnelSyncError):
    """Diagnostic logs could not be exported."""
