"""Tunnel provider — wires the routing engine, OS backend, scheduler and gateway.

The provider is an explicit object: engine callbacks are closures over
this instance, never a process-wide "current provider" pointer. The
engine's callbacks may fire on any thread; the running-info callback
only posts a facts-changed signal to the scheduler.
"""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

from tunnelsync.engine.base import MeshEngine, NetworkBackend
from tunnelsync.errors import LogExportError, RebindFailed, TunnelSyncError
from tunnelsync.logs import export_logs
from tunnelsync.notify import ErrorGateway
from tunnelsync.tunnel.builder import build_settings
from tunnelsync.tunnel.facts import parse_running_info
from tunnelsync.tunnel.models import DesiredSettings, TunnelOptions
from tunnelsync.tunnel.scheduler import (
    DEFAULT_DEBOUNCE,
    CycleOutcome,
    CycleResult,
    ReassertionScheduler,
)
from tunnelsync.tunnel.snapshot import SettingsSnapshot

logger = logging.getLogger(__name__)


class ProviderCommand(enum.Enum):
    """Commands the host application may send to a running tunnel."""

    EXPORT_OSLOG = "export_oslog"
    RUNNING_INFO = "running_info"
    LAST_NETWORK_SETTINGS = "last_network_settings"


class TunnelProvider:
    """Runs one tunnel session: engine + reconciliation + host messaging."""

    def __init__(
        self,
        engine: MeshEngine,
        backend: NetworkBackend,
        gateway: ErrorGateway,
        log_file: Path | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
        on_cancel: Callable[[str], None] | None = None,
    ) -> None:
        self._engine = engine
        self._backend = backend
        self._gateway = gateway
        self._log_file = log_file
        self._debounce = debounce
        self._on_cancel = on_cancel
        self._scheduler: ReassertionScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    def start(self, options: TunnelOptions, timeout: float | None = 30.0) -> CycleResult:
        """Start the engine and install the first configuration."""
        if self._scheduler is not None:
            raise TunnelSyncError("Tunnel already started")
        if not options.config.strip():
            self._fail_start("config is empty")

        try:
            self._engine.start(options.config, options.log_level)
        except Exception as exc:
            self._fail_start(f"failed to run network instance: {exc}")

        def compute() -> DesiredSettings:
            info = parse_running_info(self._engine.running_info())
            return build_settings(info, options)

        scheduler = ReassertionScheduler(
            compute=compute,
            apply=self._backend.apply,
            rebind=self._rebind,
            on_failure=self._report_failure,
            debounce=self._debounce,
        )
        self._scheduler = scheduler
        scheduler.start()
        # First cycle must be queued before any engine signal can start one
        first = scheduler.reassert()
        self._engine.register_stop_callback(self._handle_engine_stop)
        self._engine.register_running_info_callback(scheduler.notify_facts_changed)
        logger.info("Tunnel '%s' started", options.name)

        result = first.result(timeout=timeout)
        if result.outcome is CycleOutcome.FAILED and result.error is not None:
            raise result.error
        if result.outcome is CycleOutcome.NOT_READY:
            logger.warning("No tunnel address yet, waiting for running info")
        return result

    def stop(self) -> None:
        logger.info("Stopping tunnel")
        try:
            self._engine.stop()
        except Exception as exc:
            logger.error("Failed to stop network instance: %s", exc)
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    def running_info(self) -> str | None:
        return self._engine.running_info()

    def last_settings(self) -> SettingsSnapshot | None:
        if self._scheduler is None or not self._scheduler.is_running:
            return None
        return self._scheduler.last_applied()

    def export_logs(self) -> Path:
        if self._log_file is None:
            raise LogExportError("no log file configured")
        return export_logs(self._log_file, self._gateway.shared_dir)

    def handle_app_message(self, data: bytes | None) -> bytes | None:
        """Answer a host command. Returns None for unknown or failed commands."""
        text = data.decode("utf-8", errors="replace").strip() if data else ""
        if not text:
            command = ProviderCommand.RUNNING_INFO
        else:
            try:
                command = ProviderCommand(text)
            except ValueError:
                logger.warning("Unknown provider command: %r", text)
                return None

        logger.info("Handling app message: %s", command.value)
        if command is ProviderCommand.RUNNING_INFO:
            info = self.running_info()
            return info.encode("utf-8") if info is not None else None
        if command is ProviderCommand.LAST_NETWORK_SETTINGS:
            snap = self.last_settings()
            return json.dumps(snap.to_dict() if snap is not None else None).encode("utf-8")
        try:
            return str(self.export_logs()).encode("utf-8")
        except LogExportError as exc:
            logger.error("Log export failed: %s", exc)
            return None

    def _fail_start(self, message: str) -> NoReturn:
        logger.error("Tunnel start failed: %s", message)
        self._gateway.report(message)
        raise TunnelSyncError(message)

    def _rebind(self) -> None:
        fd = self._backend.tunnel_fd()
        if fd is None:
            raise RebindFailed("no available tun fd")
        try:
            self._engine.set_tun_fd(fd)
        except Exception as exc:
            raise RebindFailed(f"failed to set tun fd to {fd}: {exc}") from exc

    def _report_failure(self, error: TunnelSyncError) -> None:
        self._gateway.report(str(error))

    def _handle_engine_stop(self) -> None:
        # Engine thread; must not block on the scheduler
        message = self._engine.latest_error() or "network instance stopped"
        logger.error("Engine stopped: %s", message)
        self._gateway.report(message)
        if self._on_cancel is not None:
            self._on_cancel(message)
