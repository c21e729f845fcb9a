"""Collaborator protocols — the routing engine and the OS network backend."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from tunnelsync.tunnel.models import DesiredSettings, LogLevel


@runtime_checkable
class MeshEngine(Protocol):
    """Protocol for the mesh routing engine that produces running info."""

    def start(self, config: str, log_level: LogLevel = LogLevel.INFO) -> None:
        """Start a network instance from engine config text at ``log_level``."""
        ...

    def stop(self) -> None:
        """Stop the network instance."""
        ...

    def running_info(self) -> str | None:
        """Return the current running info as JSON text, or None."""
        ...

    def register_running_info_callback(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` (on any thread) whenever running info changes."""
        ...

    def register_stop_callback(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` (on any thread) when the engine stops unexpectedly."""
        ...

    def latest_error(self) -> str | None:
        """Return the most recent engine error message."""
        ...

    def set_tun_fd(self, fd: int) -> None:
        """Hand the tunnel's packet I/O handle to the engine."""
        ...


@runtime_checkable
class NetworkBackend(Protocol):
    """Protocol for installing tunnel settings into the operating system."""

    def apply(self, settings: DesiredSettings) -> None:
        """Install the settings. Raises ApplyFailed on failure."""
        ...

    def tunnel_fd(self) -> int | None:
        """Return the data-path file descriptor, or None if unavailable."""
        ...
